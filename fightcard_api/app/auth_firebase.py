# fightcard_api/app/auth_firebase.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from .services.firebase import verify_id_token

bearer = HTTPBearer(auto_error=False)


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> dict:
    """
    Strict auth:
      - Requires a valid Firebase ID token
      - Returns the decoded Firebase claims (uid, email, name, ...)
    """
    if not creds or not creds.scheme.lower().startswith("bearer"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer token",
        )

    claims = verify_id_token(creds.credentials)
    if not isinstance(claims, dict) or not claims.get("uid"):
        logger.info("Rejected bearer token: verify_id_token returned {!r}", type(claims).__name__)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Firebase token",
        )
    return claims
