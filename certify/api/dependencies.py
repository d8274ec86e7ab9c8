from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from certify.engine import CertificationEngine
from certify.models.principal import Principal

logger = logging.getLogger(__name__)

# Tokens are minted by the platform's auth provider; this service only
# verifies them.  tokenUrl is documentation for the OpenAPI schema.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

_JWT_ALGORITHMS = ["HS256"]


def get_engine(request: Request) -> CertificationEngine:
    """The engine assembled by the application lifespan."""
    return request.app.state.engine


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
    engine: Annotated[CertificationEngine, Depends(get_engine)],
) -> Principal:
    """Validate the bearer token and return the caller's Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = jwt.decode(
            raw_token,
            engine.settings.jwt_secret,
            algorithms=_JWT_ALGORITHMS,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=str(claims["sub"]),
        roles=frozenset(claims.get("roles", [])),
        display_name=claims.get("name"),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard
