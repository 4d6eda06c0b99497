"""
Human-readable sequential identifiers (ORDER-01, DIST-02, EMPLOYEE-03, ...).

The next number is derived from the highest existing one, so two callers that
read the same collection at the same time will compute the same ID. Inserts
are expected to enforce uniqueness and surface the clash as a ConflictError;
a dedicated atomic counter would be needed to remove the race entirely.
"""
import re
from typing import Iterable

ORDER_PREFIX = "ORDER"
DISTRIBUTER_PREFIX = "DIST"
EMPLOYEE_PREFIX = "EMPLOYEE"


class SequentialIdGenerator:
    def __init__(self, prefix: str, min_width: int = 2):
        self.prefix = prefix
        self.min_width = min_width
        self._pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")

    def matches(self, candidate: str) -> bool:
        return bool(candidate and self._pattern.match(candidate))

    def highest(self, existing_ids: Iterable[str]) -> int:
        highest = 0
        for candidate in existing_ids:
            match = self._pattern.match(candidate or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    def next_id(self, existing_ids: Iterable[str]) -> str:
        next_number = self.highest(existing_ids) + 1
        return f"{self.prefix}-{str(next_number).zfill(self.min_width)}"


order_ids = SequentialIdGenerator(ORDER_PREFIX)
distributer_ids = SequentialIdGenerator(DISTRIBUTER_PREFIX)
employee_ids = SequentialIdGenerator(EMPLOYEE_PREFIX)
