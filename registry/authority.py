"""
Deferred Reveal Asset Protocol - Capacity Authorities

This module defines the capacity authority: a collection-scoped counter with a
fixed target that gates how many mint or reveal operations may happen, and the
capability handle callers present to use it.

An authority moves from ACTIVE to COMPLETE exactly once, when its counter
reaches the target. COMPLETE is terminal: no further admissions are possible,
and only then may the authority be destroyed.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import (
    RevealIncompleteError,
    RevealTargetExceededError,
    SupplyExhaustedError,
    SupplyNotExhaustedError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthorityKind(str, Enum):
    """What an authority counts."""
    MINT = "mint"
    REVEAL = "reveal"


class AuthorityPhase(str, Enum):
    """Authority lifecycle phase."""
    ACTIVE = "active"
    COMPLETE = "complete"


class Capability(BaseModel):
    """Handle naming one live authority; required for privileged operations."""

    model_config = ConfigDict(frozen=True)

    authority_id: str = Field(..., min_length=1)
    collection_id: str = Field(..., min_length=1)
    kind: AuthorityKind


class CapacityAuthority(BaseModel):
    """Counter with a fixed target and a one-way ACTIVE -> COMPLETE phase."""

    authority_id: str = Field(default_factory=lambda: uuid4().hex)
    collection_id: str = Field(..., min_length=1)
    kind: AuthorityKind
    target: int = Field(..., gt=0, description="Number of admissions allowed")
    count: int = Field(default=0, ge=0, description="Admissions so far")
    phase: AuthorityPhase = Field(default=AuthorityPhase.ACTIVE)
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = Field(None)

    @model_validator(mode='after')
    def validate_counter(self):
        """Validate counter bounds and phase consistency."""
        if self.count > self.target:
            raise ValueError(f'Count {self.count} exceeds target {self.target}')

        expected = AuthorityPhase.COMPLETE if self.count == self.target else AuthorityPhase.ACTIVE
        if self.phase != expected:
            raise ValueError(
                f'Phase {self.phase.value} inconsistent with count {self.count}/{self.target}'
            )

        return self

    def size(self) -> int:
        """Number of admissions so far."""
        return self.count

    def remaining(self) -> int:
        """Number of admissions still available."""
        return self.target - self.count

    def is_complete(self) -> bool:
        return self.phase == AuthorityPhase.COMPLETE

    def get_completion_percentage(self) -> float:
        """Get progress towards the target as a percentage."""
        return (self.count / self.target) * 100

    def capability(self) -> Capability:
        """Issue the capability handle for this authority."""
        return Capability(
            authority_id=self.authority_id,
            collection_id=self.collection_id,
            kind=self.kind,
        )

    def matches(self, capability: Capability) -> bool:
        """Check whether a capability names this authority."""
        return (
            capability.authority_id == self.authority_id
            and capability.collection_id == self.collection_id
            and capability.kind == self.kind
        )

    def _exhausted(self, requested: int = 1) -> SupplyExhaustedError:
        if self.kind == AuthorityKind.REVEAL:
            return RevealTargetExceededError(
                f"Reveal target reached ({self.count}/{self.target})",
                collection_id=self.collection_id,
            )
        return SupplyExhaustedError(
            f"Supply exhausted: requested {requested}, remaining {self.remaining()} "
            f"of {self.target}",
            collection_id=self.collection_id,
        )

    def _advance(self, amount: int) -> None:
        self.count += amount
        if self.count == self.target:
            self.phase = AuthorityPhase.COMPLETE
            self.completed_at = _utcnow()

    def admit(self) -> int:
        """
        Admit one operation.

        Returns:
            Assigned sequence number (count before the call plus one)
        """
        if self.is_complete():
            raise self._exhausted()

        self._advance(1)
        return self.count

    def admit_many(self, quantity: int) -> List[int]:
        """
        Admit `quantity` operations at once, or none at all.

        Returns:
            Assigned sequence numbers in ascending order
        """
        if quantity < 0:
            raise ValueError("Quantity cannot be negative")

        if quantity == 0:
            return []

        if quantity > self.remaining():
            raise self._exhausted(quantity)

        first = self.count + 1
        self._advance(quantity)
        return list(range(first, first + quantity))

    def ensure_destroyable(self) -> None:
        """Raise unless the counter has reached its target."""
        if self.is_complete():
            return

        if self.kind == AuthorityKind.REVEAL:
            raise RevealIncompleteError(
                f"Revealed {self.count} of {self.target}",
                collection_id=self.collection_id,
            )
        raise SupplyNotExhaustedError(
            f"Minted {self.count} of {self.target}",
            collection_id=self.collection_id,
        )
