"""Certificate number allocation.

FORMAT
  PREFIX<year>-<6 digits>-<4 digits>-<3 letters>-<5 alnum>
  e.g. MUNI2026-048213-7730-QXB-9F2KD

  The random part carries roughly 10^6 * 10^4 * 26^3 * 36^5 ≈ 10^19
  combinations per year, so collisions are a rounding error.  They are
  still handled, because a certificate number is a public identifier and
  must never be shared.

ALLOCATION
  ``allocate`` draws candidates and asks the caller's ``is_taken`` check
  (primary and public stores) until one is free.  After ``max_attempts``
  collisions it gives up on randomness alone and appends ``-<epoch ms>``
  to a fresh candidate.  Exhaustion is logged and counted, never raised:
  failing an issuance over numbering would punish the learner for an
  allocator problem.
"""

from __future__ import annotations

import datetime
import logging
import random
import secrets
import string
from collections.abc import Awaitable, Callable

from certify.core.metrics import NUMBER_COLLISIONS, NUMBER_FALLBACKS

logger = logging.getLogger(__name__)

_LETTERS = string.ascii_uppercase
_ALNUM = string.ascii_uppercase + string.digits

DEFAULT_MAX_ATTEMPTS = 10


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class CertificateNumberGenerator:
    def __init__(
        self,
        prefix: str = "MUNI",
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rng: random.Random | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._prefix = prefix
        self._max_attempts = max_attempts
        self._rng = rng or secrets.SystemRandom()
        self._clock = clock

    def generate(self) -> str:
        rng = self._rng
        return "-".join(
            (
                f"{self._prefix}{self._clock().year}",
                f"{rng.randrange(1_000_000):06d}",
                f"{rng.randrange(10_000):04d}",
                "".join(rng.choice(_LETTERS) for _ in range(3)),
                "".join(rng.choice(_ALNUM) for _ in range(5)),
            )
        )

    async def allocate(self, is_taken: Callable[[str], Awaitable[bool]]) -> str:
        for attempt in range(1, self._max_attempts + 1):
            candidate = self.generate()
            if not await is_taken(candidate):
                return candidate
            NUMBER_COLLISIONS.inc()
            logger.warning(
                "Certificate number collision (attempt %d/%d)",
                attempt,
                self._max_attempts,
                extra={"certificate_number": candidate},
            )

        millis = int(self._clock().timestamp() * 1000)
        fallback = f"{self.generate()}-{millis}"
        NUMBER_FALLBACKS.inc()
        logger.error(
            "number_generation_exhausted after %d attempts, using suffixed number",
            self._max_attempts,
            extra={"certificate_number": fallback, "outcome": "fallback"},
        )
        return fallback
