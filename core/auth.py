import json
import os
import secrets
from typing import Optional

import firebase_admin
from fastapi import Request
from firebase_admin import auth as fb_auth, credentials as fb_credentials, exceptions as firebase_exceptions
from sqlalchemy.orm import Session

from core.config import logger, CRON_SECRET
from core.errors import MomentumError, NotFound, Unauthorized


FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
FIREBASE_SERVICE_ACCOUNT_JSON = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON", "")
FIREBASE_SERVICE_ACCOUNT_JSON_PATH = (os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH", "") or "").strip().strip('"').strip("'")


def _firebase_credential():
    """Inline service-account JSON, then a file path, else application default credentials."""
    if FIREBASE_SERVICE_ACCOUNT_JSON:
        return fb_credentials.Certificate(json.loads(FIREBASE_SERVICE_ACCOUNT_JSON))
    if FIREBASE_SERVICE_ACCOUNT_JSON_PATH and os.path.isfile(FIREBASE_SERVICE_ACCOUNT_JSON_PATH):
        return fb_credentials.Certificate(FIREBASE_SERVICE_ACCOUNT_JSON_PATH)
    return None


def _init_firebase() -> bool:
    if firebase_admin._apps:
        return True
    options = {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None
    try:
        firebase_admin.initialize_app(_firebase_credential(), options)
    except (ValueError, OSError) as ex:
        logger.warning(f"[auth] Firebase Admin not initialized: {ex}")
        return False
    logger.info("[auth] Firebase Admin initialized")
    return True


firebase_enabled = _init_firebase()


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def get_uid_from_request(request: Request) -> Optional[str]:
    token = _bearer_token(request)
    if not token:
        return None
    if not firebase_enabled:
        return None
    try:
        decoded = fb_auth.verify_id_token(token)
        return decoded.get("uid")
    except (ValueError, firebase_exceptions.FirebaseError) as ex:
        logger.warning(f"[auth] token verification failed: {ex}")
        return None


def get_photographer(db: Session, uid: str):
    """Photographer row for an authenticated uid, or NotFound."""
    from models.booking import Photographer

    photographer = db.query(Photographer).filter(Photographer.uid == uid).first()
    if not photographer:
        raise NotFound("Photographer not found")
    return photographer


def require_cron_secret(request: Request) -> None:
    """Scheduler calls carry `Authorization: Bearer <CRON_SECRET>`, compared exactly."""
    if not CRON_SECRET:
        logger.error("CRON_SECRET is not set; refusing scheduler trigger")
        raise MomentumError("Cron secret not configured")
    provided = request.headers.get("authorization") or ""
    if not secrets.compare_digest(provided.encode("utf-8"), f"Bearer {CRON_SECRET}".encode("utf-8")):
        raise Unauthorized("Unauthorized")
