# API tests for /api/v1/documents
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from edo_workflow_service.app.main import app
from edo_workflow_service.app.service.exceptions import ConcurrencyConflictError, KafkaProducerError
from edo_workflow_service.app.service.interfaces.permission_client import AbstractPermissionClient
from edo_workflow_service.infrastructure.database.connection import get_db
from edo_workflow_service.infrastructure.kafka.producer import KafkaEventPublisher, get_optional_event_publisher
from edo_workflow_service.infrastructure.permission_service_client import get_permission_client

HANDLERS_MODULE = "edo_workflow_service.app.service.commands.handlers"
CREATOR = {"X-Actor-Id": "creator-1"}


class FakePermissionClient(AbstractPermissionClient):
    def __init__(self):
        self.denied_actions = set()

    async def may_act(self, actor_id, action, document_id=None):
        return action not in self.denied_actions


@pytest.fixture
def test_db():
    return AsyncMongoMockClient()["test_edo_documents_api"]


@pytest.fixture
def permissions():
    return FakePermissionClient()


@pytest.fixture
def publisher():
    return MagicMock(spec=KafkaEventPublisher)


@pytest.fixture
def client(test_db, permissions, publisher):
    app.dependency_overrides[get_db] = lambda: test_db
    app.dependency_overrides[get_permission_client] = lambda: permissions
    app.dependency_overrides[get_optional_event_publisher] = lambda: publisher
    yield TestClient(app)
    app.dependency_overrides = {}


def create_document(client, headers=CREATOR, **overrides) -> dict:
    payload = {"title": "Leave request", "type": "CERTIFICATE", "content": "Please approve"}
    payload.update(overrides)
    response = client.post("/api/v1/documents", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def send_for_approval(client, document_id, approvers):
    response = client.patch(f"/api/v1/documents/{document_id}", json={"approver_ids": approvers}, headers=CREATOR)
    assert response.status_code == 200, response.text
    return response.json()


# --- Creation and queries ---

def test_create_document_returns_draft(client, publisher):
    document = create_document(client, file_refs=["f1"])

    assert document["status"] == "DRAFT"
    assert document["approvals"] == []
    assert document["created_by"] == "creator-1"
    assert document["file_refs"] == ["f1"]
    publisher.publish_event.assert_called_once()


def test_create_requires_actor_header(client):
    response = client.post("/api/v1/documents", json={"title": "x", "type": "CERTIFICATE", "content": "y"})
    assert response.status_code == 401


def test_create_with_unknown_type_is_422(client):
    response = client.post("/api/v1/documents", json={"title": "x", "type": "MEMO", "content": "y"}, headers=CREATOR)
    assert response.status_code == 422


def test_create_with_empty_content_is_400(client):
    response = client.post("/api/v1/documents", json={"title": "x", "type": "CERTIFICATE", "content": " "}, headers=CREATOR)
    assert response.status_code == 400


def test_create_denied_by_permission_service(client, permissions):
    permissions.denied_actions.add("CREATE")
    response = client.post("/api/v1/documents", json={"title": "x", "type": "CERTIFICATE", "content": "y"}, headers=CREATOR)
    assert response.status_code == 403


def test_create_with_approvers_goes_straight_to_in_progress(client):
    document = create_document(client, approver_ids=["A", "B"])
    assert document["status"] == "IN_PROGRESS"
    assert document["number"].startswith("CERT-")


def test_get_document_includes_approvals_and_comments(client):
    document = create_document(client)
    send_for_approval(client, document["id"], ["A"])
    client.post(f"/api/v1/documents/{document['id']}/comments", json={"content": "first"}, headers={"X-Actor-Id": "A"})

    response = client.get(f"/api/v1/documents/{document['id']}")

    assert response.status_code == 200
    details = response.json()
    assert [a["approver_id"] for a in details["approvals"]] == ["A"]
    assert [c["content"] for c in details["comments"]] == ["first"]


def test_get_unknown_document_is_404(client):
    assert client.get("/api/v1/documents/missing").status_code == 404
    assert client.get("/api/v1/documents/missing/approvals").status_code == 404
    assert client.get("/api/v1/documents/missing/comments").status_code == 404


def test_list_documents_with_filters_and_meta(client):
    for i in range(3):
        create_document(client, title=f"Order {i}", type="ORDER")
    create_document(client, title="Certificate", headers={"X-Actor-Id": "other"})

    response = client.get("/api/v1/documents", params={"type": "ORDER", "limit": 2, "page": 1})

    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 2
    assert body["meta"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}

    searched = client.get("/api/v1/documents", params={"search": "certif"}).json()
    assert [d["title"] for d in searched["data"]] == ["Certificate"]


def test_list_documents_clamps_limit(client):
    body = client.get("/api/v1/documents", params={"limit": 10_000}).json()
    assert body["meta"]["limit"] == 100
    assert client.get("/api/v1/documents", params={"page": 0}).status_code == 422


def test_approvals_are_returned_in_order(client):
    document = create_document(client)
    send_for_approval(client, document["id"], ["Z", "A", "M"])

    approvals = client.get(f"/api/v1/documents/{document['id']}/approvals").json()
    assert [(a["approver_id"], a["order"]) for a in approvals] == [("Z", 1), ("A", 2), ("M", 3)]


# --- Workflow ---

def test_approval_flow_through_completion(client):
    document = create_document(client)
    send_for_approval(client, document["id"], ["A", "B"])

    first = client.post(f"/api/v1/documents/{document['id']}/approve", json={"status": "APPROVED"}, headers={"X-Actor-Id": "A"})
    assert first.status_code == 200
    assert first.json()["status"] == "IN_PROGRESS"

    second = client.post(f"/api/v1/documents/{document['id']}/approve", json={"status": "APPROVED", "comment": "ok"}, headers={"X-Actor-Id": "B"})
    assert second.json()["status"] == "APPROVED"

    completed = client.post(f"/api/v1/documents/{document['id']}/complete", headers={"X-Actor-Id": "registrar"})
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"


def test_reject_endpoint_and_comment_rules(client):
    document = create_document(client)
    send_for_approval(client, document["id"], ["A", "B"])

    blank = client.post(f"/api/v1/documents/{document['id']}/reject", json={"comment": "  "}, headers={"X-Actor-Id": "A"})
    assert blank.status_code == 400
    missing = client.post(f"/api/v1/documents/{document['id']}/approve", json={"status": "REJECTED"}, headers={"X-Actor-Id": "A"})
    assert missing.status_code == 400

    rejected = client.post(f"/api/v1/documents/{document['id']}/reject", json={"comment": "missing signature"}, headers={"X-Actor-Id": "A"})
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "REJECTED"

    late = client.post(f"/api/v1/documents/{document['id']}/approve", json={"status": "APPROVED"}, headers={"X-Actor-Id": "B"})
    assert late.status_code == 409


def test_stranger_cannot_approve(client):
    document = create_document(client)
    send_for_approval(client, document["id"], ["A"])
    response = client.post(f"/api/v1/documents/{document['id']}/approve", json={"status": "APPROVED"}, headers={"X-Actor-Id": "Z"})
    assert response.status_code == 403


def test_approving_a_draft_is_409(client):
    document = create_document(client)
    response = client.post(f"/api/v1/documents/{document['id']}/approve", json={"status": "APPROVED"}, headers={"X-Actor-Id": "A"})
    assert response.status_code == 409


def test_patch_edits_draft_and_rejects_strangers(client):
    document = create_document(client)

    edited = client.patch(f"/api/v1/documents/{document['id']}", json={"title": "Renamed"}, headers=CREATOR)
    assert edited.status_code == 200
    assert edited.json()["title"] == "Renamed"

    stranger = client.patch(f"/api/v1/documents/{document['id']}", json={"title": "x"}, headers={"X-Actor-Id": "Z"})
    assert stranger.status_code == 403


def test_patch_with_self_approval_is_400(client):
    document = create_document(client)
    response = client.patch(f"/api/v1/documents/{document['id']}", json={"approver_ids": ["creator-1"]}, headers=CREATOR)
    assert response.status_code == 400


def test_failed_edit_and_send_leaves_draft_untouched(client):
    document = create_document(client)

    response = client.patch(
        f"/api/v1/documents/{document['id']}",
        json={"title": "Renamed", "approver_ids": ["creator-1"]},
        headers=CREATOR,
    )
    assert response.status_code == 400

    stored = client.get(f"/api/v1/documents/{document['id']}").json()
    assert stored["title"] == "Leave request"
    assert stored["status"] == "DRAFT"
    assert stored["version"] == document["version"]


def test_send_denied_by_permission_service_keeps_edits_out(client, permissions):
    document = create_document(client)
    permissions.denied_actions.add("SEND_FOR_APPROVAL")

    response = client.patch(
        f"/api/v1/documents/{document['id']}",
        json={"title": "Renamed", "approver_ids": ["A"]},
        headers=CREATOR,
    )
    assert response.status_code == 403
    assert client.get(f"/api/v1/documents/{document['id']}").json()["title"] == "Leave request"


def test_edit_and_send_commit_together(client, publisher):
    document = create_document(client)

    response = client.patch(
        f"/api/v1/documents/{document['id']}",
        json={"title": "Renamed", "approver_ids": ["A", "B"]},
        headers=CREATOR,
    )
    assert response.status_code == 200, response.text
    sent = response.json()
    assert sent["title"] == "Renamed"
    assert sent["status"] == "IN_PROGRESS"
    assert sent["version"] == document["version"] + 1
    published = [c.args[0].event_type for c in publisher.publish_event.call_args_list]
    assert published == ["DocumentCreated", "DocumentSentForApproval"]


def test_delete_draft(client):
    document = create_document(client)
    assert client.delete(f"/api/v1/documents/{document['id']}", headers={"X-Actor-Id": "Z"}).status_code == 403
    assert client.delete(f"/api/v1/documents/{document['id']}", headers=CREATOR).status_code == 204
    assert client.get(f"/api/v1/documents/{document['id']}").status_code == 404


def test_comments_endpoint(client):
    document = create_document(client)
    created = client.post(f"/api/v1/documents/{document['id']}/comments", json={"content": "hello"}, headers={"X-Actor-Id": "A"})
    assert created.status_code == 201
    assert created.json()["author_id"] == "A"

    empty = client.post(f"/api/v1/documents/{document['id']}/comments", json={"content": ""}, headers={"X-Actor-Id": "A"})
    assert empty.status_code == 400

    listed = client.get(f"/api/v1/documents/{document['id']}/comments").json()
    assert [c["content"] for c in listed] == ["hello"]


# --- Error mapping ---

@patch(f"{HANDLERS_MODULE}.handle_approval_decision", new_callable=AsyncMock)
def test_exhausted_conflict_is_409(mock_handler, client):
    mock_handler.side_effect = ConcurrencyConflictError("doc-1", 3, 4)
    response = client.post("/api/v1/documents/doc-1/approve", json={"status": "APPROVED"}, headers={"X-Actor-Id": "A"})
    assert response.status_code == 409
    assert "Concurrency conflict" in response.json()["detail"]


@patch(f"{HANDLERS_MODULE}.handle_mark_completed", new_callable=AsyncMock)
def test_publish_failure_is_502(mock_handler, client):
    mock_handler.side_effect = KafkaProducerError("broker down")
    response = client.post("/api/v1/documents/doc-1/complete", headers={"X-Actor-Id": "A"})
    assert response.status_code == 502


@patch(f"{HANDLERS_MODULE}.handle_add_comment", new_callable=AsyncMock)
def test_unexpected_error_is_500(mock_handler, client):
    mock_handler.side_effect = RuntimeError("boom")
    response = client.post("/api/v1/documents/doc-1/comments", json={"content": "x"}, headers={"X-Actor-Id": "A"})
    assert response.status_code == 500
