# app/auth/router.py

import html
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth.token_manager import TokenManager
from app.core.config import Settings
from app.core.dependencies import get_adobe_client, get_settings, get_token_manager
from app.esign.exceptions import ProviderRejectedException
from app.utils.adobe_sign_utils import AdobeSignClient
from app.utils.logger import get_logger

router = APIRouter(tags=["Admin"], prefix="/admin")
logger = get_logger(__name__)


@router.get("/login")
async def adobe_login(
    config: Settings = Depends(get_settings),
    adobe_client: AdobeSignClient = Depends(get_adobe_client),
):
    """
    Redirect the operator to the Adobe Sign consent page.
    """
    url = adobe_client.authorization_url(config.adobe_scope_list)
    logger.info("adobe_oauth_redirect", url=url)
    return RedirectResponse(url)


@router.get("/callback", response_class=HTMLResponse)
async def adobe_callback(
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    adobe_client: AdobeSignClient = Depends(get_adobe_client),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """
    OAuth2 callback: exchange the authorization code and keep the tokens.
    """
    if error or not code:
        logger.error("adobe_oauth_callback_error", error=error)
        return HTMLResponse(f"<pre>{html.escape(error or 'Missing authorization code')}</pre>", status_code=400)

    try:
        data = await adobe_client.exchange_code(code)
    except ProviderRejectedException as e:
        logger.error("adobe_oauth_callback_failed", error=e.message, details=e.details)
        return HTMLResponse(f"<pre>{html.escape(e.message)}</pre>", status_code=500)

    token_manager.set_token(data["access_token"], data.get("expires_in", 3600), data.get("refresh_token"))
    logger.info("adobe_token_saved_from_callback")
    return HTMLResponse("<h1>Token saved</h1>")
