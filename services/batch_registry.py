"""
Batch registry: read model over active customer batches.

The registry only reads. Capacity figures in a snapshot are a point-in-time
view used for evaluation; the committer re-checks capacity atomically at write
time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence

from domain.batch import CustomerBatch
from domain.territory import describe_territory


class BatchRegistry(Protocol):
    def list_active_batches(self, branch: str) -> List[CustomerBatch]:
        ...


@dataclass(frozen=True, slots=True)
class BatchSnapshot:
    branch: str
    batches: Sequence[CustomerBatch]

    @property
    def is_empty(self) -> bool:
        return not self.batches

    @property
    def with_capacity(self) -> List[CustomerBatch]:
        return [b for b in self.batches if b.has_capacity]

    @property
    def has_capacity(self) -> bool:
        return any(b.has_capacity for b in self.batches)

    def summary_lines(self) -> List[str]:
        return [
            f"{b.display_name}: {b.current_batch_count}/{b.total_batch_size} "
            f"({b.remaining_capacity} remaining, {describe_territory(b.territory)})"
            for b in self.batches
        ]


def load_batch_snapshot(registry: BatchRegistry, branch: str) -> BatchSnapshot:
    """
    Fetch active batches for `branch` and order them by batch id.

    Inactive batches and batches of other branches are dropped even if the
    registry returns them, so the evaluator only ever sees the branch's
    active set.
    """

    batches = [b for b in registry.list_active_batches(branch) if b.is_active and b.branch == branch]
    batches.sort(key=lambda b: str(b.batch_id))
    return BatchSnapshot(branch=branch, batches=tuple(batches))


__all__ = ["BatchRegistry", "BatchSnapshot", "load_batch_snapshot"]
