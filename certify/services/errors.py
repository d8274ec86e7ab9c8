"""Exceptions raised by the certification engine.

Only failures are exceptions here.  "Not eligible" and "already
certified" are ordinary results (see certify.models.eligibility).
"""

from __future__ import annotations

from uuid import UUID

from certify.models.eligibility import UNAVAILABLE_MESSAGE


class CertificationError(Exception):
    pass


class CatalogUnavailable(CertificationError):
    """The course/event has no active lessons or no catalog entry.

    A configuration problem, not something the learner can fix.
    """

    def __init__(self, kind: str, item_id: UUID) -> None:
        super().__init__(f"{kind} {item_id} has no active lessons")
        self.kind = kind
        self.item_id = item_id


class StoreError(CertificationError):
    """A transient failure of a backing store; safe to retry later."""

    user_message = UNAVAILABLE_MESSAGE


class UniqueConstraintViolation(CertificationError):
    """A certificate insert collided with a storage-level unique key.

    constraint is "active_holder" (user already holds an active
    certificate for the item) or "certificate_number".
    """

    ACTIVE_HOLDER = "active_holder"
    CERTIFICATE_NUMBER = "certificate_number"

    def __init__(self, constraint: str) -> None:
        super().__init__(f"unique constraint violated: {constraint}")
        self.constraint = constraint


class PartialWriteFailure(StoreError):
    """The public record write failed after the primary write succeeded.

    rolled_back is False when the compensating delete also failed and an
    orphan was recorded.  Callers see the same retryable error either way.
    """

    def __init__(self, certificate_number: str, *, rolled_back: bool) -> None:
        super().__init__(
            f"public record write failed for {certificate_number} "
            f"(rolled_back={rolled_back})"
        )
        self.certificate_number = certificate_number
        self.rolled_back = rolled_back
