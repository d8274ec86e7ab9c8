"""Unit-of-work helper shared by the Pg* repositories.

Each repository call runs in its own short transaction: the primary and
public certificate stores are deliberately not enlisted in one transaction,
so a commit in one is visible before the other is written.  Driver and
SQLAlchemy errors are translated here into the engine's exceptions so no
caller ever sees a raw storage error.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certify.db.tables import ACTIVE_HOLDER_INDEX, CERTIFICATE_NUMBER_CONSTRAINT
from certify.services.errors import StoreError, UniqueConstraintViolation

logger = logging.getLogger(__name__)

_PUBLIC_PKEY = "public_certificates_pkey"


def translate_integrity_error(exc: IntegrityError) -> Exception:
    message = str(exc.orig)
    if ACTIVE_HOLDER_INDEX in message:
        return UniqueConstraintViolation(UniqueConstraintViolation.ACTIVE_HOLDER)
    if CERTIFICATE_NUMBER_CONSTRAINT in message or _PUBLIC_PKEY in message:
        return UniqueConstraintViolation(UniqueConstraintViolation.CERTIFICATE_NUMBER)
    return StoreError(f"integrity error: {message}")


@asynccontextmanager
async def transaction(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session, begin, and commit on clean exit."""
    try:
        async with factory.begin() as session:
            yield session
    except IntegrityError as exc:
        raise translate_integrity_error(exc) from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Store operation failed: %s", exc.__class__.__name__)
        raise StoreError(str(exc)) from exc
