from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Caller identity taken from a bearer token minted by the auth provider.

    user_id:      token subject, used as the learner's stable identifier
    roles:        platform roles; "admin" unlocks forced issuance and revocation
    display_name: optional "name" claim, snapshotted onto new certificates
    """

    user_id: str
    roles: frozenset[str]
    display_name: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def is_platform_admin(self) -> bool:
        return "admin" in self.roles
