"""Per-item outcomes aggregated into a per-cycle report.

Every loop in the engine turns the processing of one position, order or user into
an ``ItemResult`` instead of letting an exception escape, so one bad item can never
abort the rest of the batch.
"""

from dataclasses import dataclass, field
from enum import Enum


class ItemOutcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ItemResult:
    item_id: int | None
    outcome: ItemOutcome
    message: str = ""

    @classmethod
    def success(cls, item_id: int | None, message: str = "") -> "ItemResult":
        return cls(item_id, ItemOutcome.SUCCESS, message)

    @classmethod
    def skipped(cls, item_id: int | None, message: str = "") -> "ItemResult":
        return cls(item_id, ItemOutcome.SKIPPED, message)

    @classmethod
    def error(cls, item_id: int | None, message: str = "") -> "ItemResult":
        return cls(item_id, ItemOutcome.ERROR, message)


@dataclass
class CycleReport:
    cycle: str
    results: list[ItemResult] = field(default_factory=list)

    def add(self, result: ItemResult) -> ItemResult:
        self.results.append(result)
        return result

    def _count(self, outcome: ItemOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return self._count(ItemOutcome.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(ItemOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ItemOutcome.ERROR)

    @property
    def status(self) -> str:
        if self.failed and not self.succeeded and not self.skipped:
            return "error"
        if self.failed:
            return "partial"
        return "success"

    def summary(self) -> str:
        return (
            f"{self.processed} processed, {self.succeeded} ok, "
            f"{self.skipped} skipped, {self.failed} failed"
        )
