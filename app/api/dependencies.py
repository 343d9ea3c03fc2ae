"""API dependencies."""

import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config import get_settings

logger = logging.getLogger(__name__)

REALM = "ScripTrack admin"

basic_auth = HTTPBasic(realm=REALM)


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf8"), expected.encode("utf8"))


def verify_credentials(credentials: HTTPBasicCredentials = Depends(basic_auth)) -> str:
    """Check HTTP Basic credentials against the admin account; returns the username."""
    settings = get_settings()
    # Evaluate both so timing does not reveal which one failed
    username_ok = _matches(credentials.username, settings.admin_username)
    password_ok = _matches(credentials.password, settings.admin_password)

    if not (username_ok and password_ok):
        logger.warning(f"Rejected admin credentials for user {credentials.username!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
        )

    return credentials.username
