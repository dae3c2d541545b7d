import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from edo_workflow_service.infrastructure.permission_service_client import PermissionServiceClient

BASE_URL = "http://permissions:8081/api/v1"


def _response(status_code: int, json_body=None) -> httpx.Response:
    request = httpx.Request("POST", f"{BASE_URL}/decisions")
    return httpx.Response(status_code, json=json_body, request=request)


@pytest.mark.asyncio
async def test_allows_everything_when_not_configured():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    client = PermissionServiceClient(http_client=http_client, base_url="")

    assert await client.may_act("u1", "APPROVE", "doc-1") is True
    http_client.post.assert_not_called()


@pytest.mark.asyncio
async def test_posts_decision_request_and_reads_allowed_flag():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    http_client.post.return_value = _response(200, {"allowed": True})
    client = PermissionServiceClient(http_client=http_client, base_url=BASE_URL + "/")

    assert await client.may_act("u1", "APPROVE", "doc-1") is True
    http_client.post.assert_awaited_once_with(
        f"{BASE_URL}/decisions",
        json={"actor_id": "u1", "action": "APPROVE", "document_id": "doc-1"},
    )


@pytest.mark.asyncio
async def test_explicit_denial():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    http_client.post.return_value = _response(200, {"allowed": False})
    client = PermissionServiceClient(http_client=http_client, base_url=BASE_URL)

    assert await client.may_act("u1", "DELETE", "doc-1") is False


@pytest.mark.asyncio
async def test_http_error_status_is_a_denial():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    http_client.post.return_value = _response(503, {"detail": "down"})
    client = PermissionServiceClient(http_client=http_client, base_url=BASE_URL)

    assert await client.may_act("u1", "APPROVE") is False


@pytest.mark.asyncio
async def test_transport_error_is_a_denial():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    http_client.post.side_effect = httpx.ConnectError("refused")
    client = PermissionServiceClient(http_client=http_client, base_url=BASE_URL)

    assert await client.may_act("u1", "APPROVE") is False


@pytest.mark.asyncio
async def test_non_json_body_is_a_denial():
    http_client = AsyncMock(spec=httpx.AsyncClient)
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.side_effect = ValueError("not json")
    http_client.post.return_value = response
    client = PermissionServiceClient(http_client=http_client, base_url=BASE_URL)

    assert await client.may_act("u1", "APPROVE") is False
