"""
Domain: Customer batches.

A CustomerBatch is one customer's standing order for leads in one vertical
(branch). It carries the purchased capacity and the fill counter, plus the
territory the customer accepts leads from.

Invariants:
- 0 <= current_batch_count <= total_batch_size
- A batch with current_batch_count == total_batch_size is full and is never a
  distribution candidate.

The fill counter is only ever advanced by the storage layer's atomic claim
operation; this entity is a read snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from uuid import UUID

from .territory import FullCountry, Territory


@dataclass(frozen=True, slots=True)
class CustomerBatch:
    batch_id: UUID
    customer_id: str
    branch: str
    total_batch_size: int
    current_batch_count: int = 0
    is_active: bool = True
    territory: Territory = field(default_factory=FullCountry)
    customer_name: Optional[str] = None
    batch_number: Optional[str] = None
    # Where accepted leads are written (spreadsheet, CRM). Opaque to the engine.
    sink: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.total_batch_size <= 0:
            raise ValueError("total_batch_size must be positive")
        if self.current_batch_count < 0:
            raise ValueError("current_batch_count must be >= 0")
        if self.current_batch_count > self.total_batch_size:
            raise ValueError(
                f"current_batch_count ({self.current_batch_count}) exceeds "
                f"total_batch_size ({self.total_batch_size})"
            )

    @property
    def has_capacity(self) -> bool:
        return self.current_batch_count < self.total_batch_size

    @property
    def remaining_capacity(self) -> int:
        return self.total_batch_size - self.current_batch_count

    @property
    def display_name(self) -> str:
        return self.customer_name or self.customer_id


__all__ = ["CustomerBatch"]
