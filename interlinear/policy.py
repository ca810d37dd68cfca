"""Error handling policy implementation."""

from __future__ import annotations

import sys
from collections import Counter
from typing import Dict, List, Optional

from .errors import ErrorCategory, ErrorRecord


class ErrorPolicy:
    """Records handled failures; recovery is always local, nothing aborts."""

    def __init__(self, *, quiet: bool = False) -> None:
        self.quiet = quiet
        self.records: List[ErrorRecord] = []

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> None:
        """Record an error and report it unless running quietly."""

        self.records.append(ErrorRecord(category=category, message=message, details=details))
        if not self.quiet:
            print(message, file=sys.stderr)

    def count(self, category: ErrorCategory | None = None) -> int:
        if category is None:
            return len(self.records)
        return sum(1 for record in self.records if record.category == category)

    def by_category(self) -> Dict[ErrorCategory, int]:
        return dict(Counter(record.category for record in self.records))
