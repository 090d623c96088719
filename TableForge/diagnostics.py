"""Report containers for table setup."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass
class TableSetupReport:
    table: str
    created: bool = False
    added_columns: Sequence[str] = field(default_factory=list)
    indexes: Sequence[str] = field(default_factory=list)

    @property
    def migrated(self) -> bool:
        return bool(self.added_columns)


def log_report(report: Any, logger=None) -> None:
    """Emit report to logger if provided."""
    if logger is None:
        return
    logger.info(report)
