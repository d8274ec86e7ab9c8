"""Auto-issue trigger.

Progress writes that complete a lesson call ``on_lesson_completed``.  When
the completion crosses the item's threshold, the trigger asks the issuer
for a certificate without any explicit learner action.

THE GUARD IS A HINT
  The IssuanceGuard remembers, per (kind, item, user), that a certificate
  was already issued, so later completions skip the evaluation and
  issuance round trip.  An attempt that is merely in flight suppresses
  nothing: two lesson players can complete within milliseconds of each
  other, and the first attempt may have read progress before the second
  write landed.  Both attempts go ahead; the certificates table's unique
  index keeps the result to one certificate.  For the same reason a Redis
  outage degrades the guard to "always acquire" instead of failing the
  progress write.

FAILURES
  A transient issuance failure releases the guard and returns the
  "unavailable" outcome with a retry message.  Nothing is retried here;
  the next eligibility check or lesson completion tries again.
"""

from __future__ import annotations

import logging
import time
from typing import Protocol
from uuid import UUID

from redis.exceptions import RedisError

from certify.core.metrics import AUTO_ISSUE_EVENTS
from certify.models.eligibility import UNAVAILABLE_MESSAGE, AutoIssueOutcome
from certify.models.entity import EntityKind
from certify.services.eligibility import EligibilityEvaluator
from certify.services.errors import CatalogUnavailable, StoreError
from certify.services.issuer import CertificateIssuer

logger = logging.getLogger(__name__)

DEFAULT_GUARD_TTL_SECONDS = 3600


def guard_key(kind: EntityKind, item_id: UUID, user_id: str) -> str:
    return f"{kind}:{item_id}:{user_id}"


class IssuanceGuard(Protocol):
    async def try_acquire(self, key: str) -> bool:
        """True unless ``key`` is already marked certified."""
        ...

    async def complete(self, key: str) -> None:
        """Mark ``key`` as certified; later acquires are suppressed."""
        ...

    async def release(self, key: str) -> None:
        """Forget ``key`` so a later completion may try again."""
        ...


class InMemoryIssuanceGuard:
    """Per-process guard; entries expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int = DEFAULT_GUARD_TTL_SECONDS) -> None:
        self._ttl = ttl_seconds
        self._entries: dict[str, tuple[str, float]] = {}

    def _sweep(self, now: float) -> None:
        expired = [
            k for k, (_, expires_at) in self._entries.items() if expires_at <= now
        ]
        for key in expired:
            del self._entries[key]

    async def try_acquire(self, key: str) -> bool:
        now = time.monotonic()
        self._sweep(now)
        entry = self._entries.get(key)
        if entry is not None:
            return entry[0] != "done"
        self._entries[key] = ("in_flight", now + self._ttl)
        return True

    async def complete(self, key: str) -> None:
        self._entries[key] = ("done", time.monotonic() + self._ttl)

    async def release(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisIssuanceGuard:
    """Guard shared by every API instance through Redis ``SET NX EX``."""

    _PREFIX = "issuance-guard:"

    def __init__(
        self, redis_client, ttl_seconds: int = DEFAULT_GUARD_TTL_SECONDS
    ) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def try_acquire(self, key: str) -> bool:
        name = f"{self._PREFIX}{key}"
        try:
            if await self._redis.set(name, "in_flight", nx=True, ex=self._ttl):
                return True
            state = await self._redis.get(name)
        except RedisError:
            logger.warning("Issuance guard unavailable, proceeding without it")
            return True
        return state != "done"

    async def complete(self, key: str) -> None:
        try:
            await self._redis.set(f"{self._PREFIX}{key}", "done", ex=self._ttl)
        except RedisError:
            logger.warning("Issuance guard unavailable, completion not recorded")

    async def release(self, key: str) -> None:
        try:
            await self._redis.delete(f"{self._PREFIX}{key}")
        except RedisError:
            logger.warning("Issuance guard unavailable, entry left to expire")


class AutoIssueTrigger:
    def __init__(
        self,
        evaluator: EligibilityEvaluator,
        issuer: CertificateIssuer,
        guard: IssuanceGuard,
    ) -> None:
        self._evaluator = evaluator
        self._issuer = issuer
        self._guard = guard

    async def on_lesson_completed(
        self,
        user_id: str,
        kind: EntityKind,
        item_id: UUID,
        student_name: str | None = None,
    ) -> AutoIssueOutcome:
        key = guard_key(kind, item_id, user_id)
        if not await self._guard.try_acquire(key):
            return self._outcome(AutoIssueOutcome(status="suppressed"))

        try:
            evaluation = await self._evaluator.evaluate(user_id, item_id, kind)
            if evaluation.existing_certificate is not None:
                await self._guard.complete(key)
                return self._outcome(
                    AutoIssueOutcome(
                        status="already_certified",
                        certificate=evaluation.existing_certificate,
                        completion_percentage=evaluation.completion_percentage,
                    )
                )
            if not evaluation.is_eligible:
                await self._guard.release(key)
                return self._outcome(
                    AutoIssueOutcome(
                        status="not_eligible",
                        completion_percentage=evaluation.completion_percentage,
                    )
                )

            result = await self._issuer.issue(
                user_id, item_id, kind=kind, student_name=student_name
            )
        except (StoreError, CatalogUnavailable) as exc:
            await self._guard.release(key)
            logger.warning(
                "Auto-issue failed: %s",
                exc,
                extra={
                    "user_id": user_id,
                    "item_kind": kind,
                    "item_id": str(item_id),
                    "outcome": "unavailable",
                },
            )
            return self._outcome(
                AutoIssueOutcome(status="unavailable", message=UNAVAILABLE_MESSAGE)
            )

        if result.status == "not_eligible":
            # Progress changed between the two evaluations
            await self._guard.release(key)
            return self._outcome(AutoIssueOutcome(status="not_eligible"))

        await self._guard.complete(key)
        return self._outcome(
            AutoIssueOutcome(
                status=result.status,
                certificate=result.certificate,
                completion_percentage=evaluation.completion_percentage,
            )
        )

    @staticmethod
    def _outcome(outcome: AutoIssueOutcome) -> AutoIssueOutcome:
        AUTO_ISSUE_EVENTS.labels(outcome=outcome.status).inc()
        return outcome
