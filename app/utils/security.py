# app/utils/security.py

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.core.config import Settings
from app.core.dependencies import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)

basic_scheme = HTTPBasic(realm="Logs", auto_error=False)


def require_basic_auth(
    credentials: HTTPBasicCredentials = Depends(basic_scheme),
    config: Settings = Depends(get_settings),
) -> str:
    """
    Guard for the operator endpoints (/auth, /logs).
    Returns:
        str: the authenticated user name
    """
    challenge = {"WWW-Authenticate": 'Basic realm="Logs"'}
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
            headers=challenge,
        )

    # An unset user or password never authenticates
    valid_user = bool(config.log_user) and secrets.compare_digest(
        credentials.username.encode(), config.log_user.encode()
    )
    valid_pass = bool(config.log_pass) and secrets.compare_digest(
        credentials.password.encode(), config.log_pass.encode()
    )
    if not (valid_user and valid_pass):
        logger.warning("basic_auth_rejected", username=credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials.",
            headers=challenge,
        )
    return credentials.username
