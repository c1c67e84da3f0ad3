# fightcard_api/app/services/firebase.py
import json
from typing import Optional

import firebase_admin
from firebase_admin import auth as fb_auth, credentials as fb_credentials
from loguru import logger

from ..settings import settings

_initialized = False


def _ensure_init() -> None:
    """
    Initialise the Firebase Admin SDK once, using either:

    - FIREBASE_SERVICE_ACCOUNT_JSON (production), or
    - application default credentials (local dev).
    """
    global _initialized
    if _initialized:
        return

    if not firebase_admin._apps:
        try:
            if settings.FIREBASE_SERVICE_ACCOUNT_JSON:
                cred = fb_credentials.Certificate(json.loads(settings.FIREBASE_SERVICE_ACCOUNT_JSON))
            else:
                cred = fb_credentials.ApplicationDefault()
            firebase_admin.initialize_app(cred)
        except Exception as e:
            # keep the API up; every token simply fails verification
            logger.error("Firebase admin init error: {!r}", e)
            return

    _initialized = True


def verify_id_token(id_token: str) -> Optional[dict]:
    """Decoded claims, or None if the token is invalid or Firebase is unavailable."""
    try:
        _ensure_init()
        if not _initialized:
            return None
        return fb_auth.verify_id_token(id_token)
    except Exception as e:
        logger.warning("verify_id_token() error: {!r}", e)
        return None
