from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from certify.models.entity import EntityKind


@dataclass(frozen=True, slots=True)
class CertificateException:
    """Administrative grant of unconditional eligibility for one item.

    Administered outside this service; the engine only reads it.
    """

    user_id: str
    kind: EntityKind
    item_id: UUID
    is_active: bool = True
    reason: str = ""
    granted_by: str | None = None
    created_at: int | None = None
