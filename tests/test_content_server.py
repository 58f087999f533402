import httpx
import pytest

from app.esign.exceptions import ContentServerException, WorkflowAdvanceFailedException
from app.utils.content_server_utils import ContentServerClient

BASE_URL = "https://otcs.example.com/otcs/cs.exe"


class FakeContentServer:
    """Records requests and answers them like a small Content Server"""

    def __init__(self, children=None, expire_first_ticket=False, task_status=200):
        self.requests = []
        self.children = children or []
        self.expire_first_ticket = expire_first_ticket
        self.task_status = task_status
        self.tickets_issued = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.replace("/otcs/cs.exe", "")

        if path == "/api/v1/auth":
            self.tickets_issued += 1
            return httpx.Response(200, json={"ticket": f"ticket-{self.tickets_issued}"})
        if self.expire_first_ticket and request.headers.get("OTCSTicket") == "ticket-1":
            return httpx.Response(401, json={"error": "expired"})

        if path == "/api/v1/nodes/123/content":
            return httpx.Response(200, content=b"%PDF-1.7 original")
        if path.startswith("/api/v1/nodes/") and path.endswith("/content"):
            return httpx.Response(404, json={"error": "not found"})
        if path == "/api/v2/nodes/456/nodes":
            results = [{"data": {"properties": {"id": node_id, "name": name}}} for node_id, name in self.children]
            return httpx.Response(200, json={"results": results})
        if path == "/api/v1/nodes":
            return httpx.Response(200, json={"id": 9001})
        if path.endswith("/versions"):
            return httpx.Response(200, json={})
        if path.startswith("/api/v2/processes/"):
            return httpx.Response(self.task_status, json={})
        return httpx.Response(500)

    def form(self, request):
        return dict(httpx.QueryParams(request.content.decode()))


def make_client(server):
    return ContentServerClient(BASE_URL, "svc", "pw", transport=httpx.MockTransport(server))


@pytest.mark.asyncio
async def test_download_authenticates_with_ticket():
    server = FakeContentServer()

    content = await make_client(server).download("123")

    assert content == b"%PDF-1.7 original"
    auth, fetch = server.requests
    assert auth.url.path.endswith("/api/v1/auth")
    assert fetch.headers["OTCSTicket"] == "ticket-1"


@pytest.mark.asyncio
async def test_expired_ticket_is_renewed_once():
    server = FakeContentServer(expire_first_ticket=True)

    assert await make_client(server).download("123") == b"%PDF-1.7 original"
    assert server.tickets_issued == 2


@pytest.mark.asyncio
async def test_missing_node_raises():
    with pytest.raises(ContentServerException) as exc:
        await make_client(FakeContentServer()).download("999")

    assert exc.value.details["status_code"] == 404


@pytest.mark.asyncio
async def test_upload_creates_new_document():
    server = FakeContentServer()

    node_id = await make_client(server).upload("456", b"%PDF signed", "contract.pdf")

    assert node_id == "9001"
    create = server.requests[-1]
    assert create.method == "POST"
    assert create.url.path.endswith("/api/v1/nodes")
    assert b'name="parent_id"' in create.content
    assert b"456" in create.content


@pytest.mark.asyncio
async def test_upload_adds_version_when_name_exists():
    server = FakeContentServer(children=[(777, "contract.pdf")])

    node_id = await make_client(server).upload("456", b"%PDF signed", "contract.pdf")

    assert node_id == "777"
    assert server.requests[-1].url.path.endswith("/api/v1/nodes/777/versions")


@pytest.mark.asyncio
async def test_advance_without_disposition_sends_on():
    server = FakeContentServer()

    await make_client(server).advance("77", "78", "2", comment="sent")

    request = server.requests[-1]
    assert request.method == "PUT"
    assert request.url.path.endswith("/api/v2/processes/77/subprocesses/78/tasks/2")
    assert server.form(request) == {"comment": "sent", "action": "SendOn"}


@pytest.mark.asyncio
async def test_advance_with_disposition_uses_custom_action():
    server = FakeContentServer()

    await make_client(server).advance("77", "78", "3", disposition="Signed", comment="done")

    assert server.form(server.requests[-1]) == {"comment": "done", "custom_action": "Signed"}


@pytest.mark.asyncio
async def test_refused_advance_raises():
    server = FakeContentServer(task_status=409)

    with pytest.raises(WorkflowAdvanceFailedException) as exc:
        await make_client(server).advance("77", "78", "3", disposition="Signed")

    assert exc.value.details["task_id"] == "3"
