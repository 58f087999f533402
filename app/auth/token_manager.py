### app/auth/token_manager.py

# Standard library imports
import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

# Third party imports
import aiohttp

# Local imports
from app.esign.exceptions import AuthenticationRequiredException, ProviderRejectedException
from app.utils.adobe_sign_utils import AdobeSignClient
from app.utils.logger import get_logger

logger = get_logger(__name__)

# Refresh a little before Adobe actually expires the token
EXPIRY_MARGIN = timedelta(seconds=60)


class TokenManager:
    """
    Keeps the Adobe Sign OAuth tokens in a JSON file and hands out a valid
    access token, refreshing it when it is about to expire.
    """
    def __init__(self, token_path: Path, adobe_client: AdobeSignClient):
        self.token_path = Path(token_path)
        self.adobe_client = adobe_client
        self.tokens: Dict = self._load_tokens()
        self._refresh_lock = asyncio.Lock()

    def _load_tokens(self) -> Dict:
        """Load the tokens from the file"""
        try:
            if self.token_path.exists():
                with open(self.token_path, "r", encoding="utf-8") as f:
                    return json.load(f)
            return {}
        except (OSError, ValueError) as e:
            logger.error("token_file_unreadable", path=str(self.token_path), error=str(e))
            return {}

    def save_tokens(self) -> None:
        """Save the tokens to the file"""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.token_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.tokens, f, indent=2)
        os.replace(tmp_path, self.token_path)

    def set_token(self, access_token: str, expires_in: int, refresh_token: Optional[str] = None) -> None:
        """Store a freshly issued token; a missing refresh token keeps the old one"""
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        self.tokens.update({
            "access_token": access_token,
            "expires_at": expires_at.isoformat(),
        })
        if refresh_token:
            self.tokens["refresh_token"] = refresh_token
        self.save_tokens()
        logger.info("adobe_token_saved", expires_at=expires_at.isoformat())

    def _current_token(self) -> Optional[str]:
        access_token = self.tokens.get("access_token")
        expires_at = self.tokens.get("expires_at")
        if not access_token or not expires_at:
            return None
        if datetime.fromisoformat(expires_at) - EXPIRY_MARGIN <= datetime.now(timezone.utc):
            return None
        return access_token

    async def get_valid_token(self) -> str:
        """
        Return a usable access token.

        Raises:
            AuthenticationRequiredException: If there is no token and no way to refresh one
        """
        token = self._current_token()
        if token:
            return token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            token = self._current_token()
            if token:
                return token

            refresh_token = self.tokens.get("refresh_token")
            if not refresh_token:
                raise AuthenticationRequiredException("No Adobe Sign session; run /admin/login")

            try:
                data = await self.adobe_client.refresh_access_token(refresh_token)
            except ProviderRejectedException as e:
                logger.error("adobe_token_refresh_failed", error=e.message, details=e.details)
                raise AuthenticationRequiredException("Refresh token rejected") from e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error("adobe_token_refresh_failed", error=str(e))
                raise AuthenticationRequiredException("Adobe Sign unreachable during refresh") from e

            self.set_token(data["access_token"], data.get("expires_in", 3600), data.get("refresh_token"))
            logger.info("adobe_token_refreshed")
            return data["access_token"]
