# app/utils/content_server_utils.py

"""
Async REST client for OpenText Content Server.

Covers the three things the signature flow needs: reading a document node,
writing the signed PDF into a folder and sending a workflow task on.
"""

from typing import Dict, Optional

import httpx

from app.esign.exceptions import ContentServerException, WorkflowAdvanceFailedException
from app.utils.logger import get_logger

logger = get_logger(__name__)

# Request timeout in seconds
OTCS_TIMEOUT = 60.0

DOCUMENT_SUBTYPE = 144


class ContentServerClient:
    """Ticket-authenticated client for the Content Server REST API"""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = OTCS_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self._transport = transport
        self._ticket: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _authenticate(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            f"{self.base_url}/api/v1/auth",
            data={"username": self.username, "password": self.password},
        )
        if response.status_code != 200:
            logger.error("otcs_auth_failed", status=response.status_code, body=response.text)
            raise ContentServerException(
                "Content Server authentication failed",
                status_code=response.status_code,
                upstream_detail=response.text,
            )
        self._ticket = response.json()["ticket"]
        return self._ticket

    async def _request(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request with the cached ticket, re-authenticating once on 401"""
        ticket = self._ticket or await self._authenticate(client)
        response = await client.request(
            method, f"{self.base_url}{path}", headers={"OTCSTicket": ticket}, **kwargs
        )
        if response.status_code == 401:
            logger.info("otcs_ticket_expired")
            ticket = await self._authenticate(client)
            response = await client.request(
                method, f"{self.base_url}{path}", headers={"OTCSTicket": ticket}, **kwargs
            )
        return response

    async def download(self, node_id: str) -> bytes:
        """
        Fetch the content of a document node.

        Raises:
            ContentServerException: If the node cannot be read
        """
        async with self._client() as client:
            response = await self._request(client, "GET", f"/api/v1/nodes/{node_id}/content")
        if response.status_code != 200:
            logger.error("otcs_download_failed", node_id=node_id, status=response.status_code)
            raise ContentServerException(
                f"Download of node {node_id} failed",
                status_code=response.status_code,
                upstream_detail=response.text,
            )
        logger.info("otcs_node_downloaded", node_id=node_id, size=len(response.content))
        return response.content

    async def upload(self, folder_id: str, content: bytes, file_name: str) -> str:
        """
        Store `content` as `file_name` in `folder_id`. An existing document
        with that name gets a new version instead of a duplicate.

        Returns:
            The id of the created or versioned node
        """
        files = {"file": (file_name, content, "application/pdf")}
        async with self._client() as client:
            existing_id = await self._find_child(client, folder_id, file_name)
            if existing_id:
                response = await self._request(
                    client, "POST", f"/api/v1/nodes/{existing_id}/versions", files=files
                )
                node_id = existing_id
            else:
                response = await self._request(
                    client,
                    "POST",
                    "/api/v1/nodes",
                    data={"type": str(DOCUMENT_SUBTYPE), "parent_id": str(folder_id), "name": file_name},
                    files=files,
                )
                node_id = None

        if response.status_code not in (200, 201):
            logger.error(
                "otcs_upload_failed",
                folder_id=folder_id,
                file_name=file_name,
                status=response.status_code,
                body=response.text,
            )
            raise ContentServerException(
                f"Upload of {file_name} to folder {folder_id} failed",
                status_code=response.status_code,
                upstream_detail=response.text,
            )
        if node_id is None:
            node_id = str(response.json().get("id", ""))
        logger.info("otcs_document_uploaded", folder_id=folder_id, file_name=file_name, node_id=node_id)
        return node_id

    async def _find_child(self, client: httpx.AsyncClient, folder_id: str, name: str) -> Optional[str]:
        response = await self._request(
            client, "GET", f"/api/v2/nodes/{folder_id}/nodes", params={"where_name": name}
        )
        if response.status_code != 200:
            return None
        for item in response.json().get("results", []):
            properties = item.get("data", {}).get("properties", {})
            if properties.get("name") == name:
                return str(properties.get("id"))
        return None

    async def advance(
        self,
        workflow_id: str,
        subworkflow_id: str,
        task_id: str,
        disposition: Optional[str] = None,
        comment: str = "",
    ) -> None:
        """
        Send a workflow task on, optionally choosing a disposition.

        Raises:
            WorkflowAdvanceFailedException: If Content Server refuses the step
        """
        form: Dict[str, str] = {"comment": comment}
        if disposition:
            form["custom_action"] = disposition
        else:
            form["action"] = "SendOn"

        path = f"/api/v2/processes/{workflow_id}/subprocesses/{subworkflow_id}/tasks/{task_id}"
        try:
            async with self._client() as client:
                response = await self._request(client, "PUT", path, data=form)
        except (httpx.HTTPError, ContentServerException) as e:
            raise WorkflowAdvanceFailedException(workflow_id, task_id, str(e)) from e

        if response.status_code not in (200, 201):
            raise WorkflowAdvanceFailedException(workflow_id, task_id, response.text)
        logger.info(
            "otcs_workflow_advanced",
            workflow_id=workflow_id,
            subworkflow_id=subworkflow_id,
            task_id=task_id,
            disposition=disposition,
        )
