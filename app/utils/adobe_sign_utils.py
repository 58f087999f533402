# app/utils/adobe_sign_utils.py

from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import quote, urlencode

import aiohttp

from app.esign.exceptions import (
    ArtifactRaceConditionException,
    ArtifactStoreFailedException,
    ProviderRejectedException,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60)
DOWNLOAD_TIMEOUT = aiohttp.ClientTimeout(total=300)


class AdobeSignClient:
    """
    Thin async client for the Adobe Acrobat Sign REST API v6 and its OAuth endpoints.
    """

    def __init__(
        self,
        api_base: str,
        auth_base: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        max_document_bytes: int = 20 * 1024 * 1024,
    ):
        self.api_base = api_base.rstrip("/")
        self.auth_base = auth_base.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.max_document_bytes = max_document_bytes

    def _rest_base(self) -> str:
        return f"{self.api_base}/api/rest/v6"

    @staticmethod
    def _auth_headers(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    # ------------------------
    # OAuth
    # ------------------------
    def authorization_url(self, scopes: List[str]) -> str:
        """Consent page URL; Adobe expects scopes joined with '+'"""
        query = urlencode({
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        })
        scope = "+".join(quote(s, safe=":") for s in scopes)
        return f"{self.auth_base}/public/oauth/v2?{query}&scope={scope}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Trade an authorization code for access and refresh tokens."""
        return await self._token_request("token", {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
        })

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Get a new access token from a refresh token."""
        return await self._token_request("refresh", {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        })

    async def _token_request(self, endpoint: str, form: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.api_base}/oauth/v2/{endpoint}"
        async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
            async with session.post(url, data=form) as response:
                body = await response.text()
                if response.status != 200:
                    logger.error("adobe_token_error", endpoint=endpoint, status=response.status, body=body)
                    raise ProviderRejectedException(
                        f"Adobe Sign token {endpoint} failed",
                        status_code=response.status,
                        upstream_detail=body,
                    )
                return await response.json(content_type=None)

    # ------------------------
    # Agreements
    # ------------------------
    async def upload_transient_document(self, access_token: str, file_name: str, content: bytes) -> str:
        """Upload a PDF as a transient document and return its id."""
        form = aiohttp.FormData()
        form.add_field("File", content, filename=file_name, content_type="application/pdf")

        url = f"{self._rest_base()}/transientDocuments"
        async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
            async with session.post(url, headers=self._auth_headers(access_token), data=form) as response:
                body = await response.text()
                if response.status not in (200, 201):
                    logger.error("adobe_transient_upload_failed", status=response.status, body=body)
                    raise ProviderRejectedException(
                        "Adobe Sign rejected the document upload",
                        status_code=response.status,
                        upstream_detail=body,
                    )
                data = await response.json(content_type=None)
                return data["transientDocumentId"]

    async def create_agreement(
        self,
        access_token: str,
        name: str,
        transient_document_id: str,
        signer_emails: List[str],
    ) -> str:
        """
        Create an agreement in IN_PROCESS state. Every signer gets its own
        participant set with order 1, so all of them are notified at once.
        """
        agreement_info = {
            "name": name,
            "fileInfos": [{"transientDocumentId": transient_document_id}],
            "participantSetsInfo": [
                {"role": "SIGNER", "order": 1, "memberInfos": [{"email": email}]}
                for email in signer_emails
            ],
            "signatureType": "ESIGN",
            "state": "IN_PROCESS",
        }

        url = f"{self._rest_base()}/agreements"
        async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
            async with session.post(url, headers=self._auth_headers(access_token), json=agreement_info) as response:
                body = await response.text()
                if response.status not in (200, 201):
                    logger.error("adobe_agreement_creation_failed", status=response.status, body=body)
                    raise ProviderRejectedException(
                        "Adobe Sign rejected the agreement",
                        status_code=response.status,
                        upstream_detail=body,
                    )
                data = await response.json(content_type=None)
                return data["id"]

    async def download_combined_document(self, access_token: str, agreement_id: str, output_path: Path) -> Path:
        """
        Stream the signed PDF, audit report attached, to `output_path`.
        A 403 means the document is not ready yet and raises ArtifactRaceConditionException.
        """
        url = f"{self._rest_base()}/agreements/{agreement_id}/combinedDocument"
        params = {"attachAuditReport": "true"}

        async with aiohttp.ClientSession(timeout=DOWNLOAD_TIMEOUT) as session:
            async with session.get(url, headers=self._auth_headers(access_token), params=params) as response:
                if response.status == 403:
                    raise ArtifactRaceConditionException(agreement_id)
                if response.status != 200:
                    body = await response.text()
                    logger.error(
                        "adobe_combined_document_failed",
                        agreement_id=agreement_id,
                        status=response.status,
                        body=body,
                    )
                    raise ArtifactStoreFailedException(agreement_id, f"HTTP {response.status}")

                written = 0
                output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(output_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        written += len(chunk)
                        if written > self.max_document_bytes:
                            break
                        f.write(chunk)
                if written > self.max_document_bytes:
                    # Nothing partial may stay in the in-process directory
                    output_path.unlink(missing_ok=True)
                    logger.error(
                        "adobe_combined_document_too_large",
                        agreement_id=agreement_id,
                        limit=self.max_document_bytes,
                    )
                    raise ArtifactStoreFailedException(agreement_id, "document exceeds size limit")

        logger.info("adobe_combined_document_saved", agreement_id=agreement_id, path=str(output_path), size=written)
        return output_path
