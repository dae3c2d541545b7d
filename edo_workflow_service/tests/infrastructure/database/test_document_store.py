# Tests for the document aggregate store (mongomock-motor backed)
import pytest
from mongomock_motor import AsyncMongoMockClient

from edo_workflow_service.app.models import DocumentDB, DocumentStatus, DocumentType
from edo_workflow_service.app.service.exceptions import ConcurrencyConflictError, DocumentNotFoundError
from edo_workflow_service.infrastructure.database import document_store


@pytest.fixture
def db():
    return AsyncMongoMockClient()["test_edo_documents"]


def make_document(**overrides) -> DocumentDB:
    data = dict(title="Enrollment", type=DocumentType.ENROLLMENT_ORDER, content="text", created_by="u1")
    data.update(overrides)
    return DocumentDB(**data)


@pytest.mark.asyncio
async def test_insert_and_get_round_trip(db):
    document = make_document(file_refs=["f1", "f2"])
    await document_store.insert_document(db, document)

    loaded = await document_store.get_document(db, document.id)
    assert loaded is not None
    assert loaded.id == document.id
    assert loaded.status == DocumentStatus.DRAFT.value
    assert loaded.file_refs == ["f1", "f2"]
    assert loaded.version == 1


@pytest.mark.asyncio
async def test_get_missing_returns_none_and_load_for_update_raises(db):
    assert await document_store.get_document(db, "nope") is None
    with pytest.raises(DocumentNotFoundError):
        await document_store.load_for_update(db, "nope")


@pytest.mark.asyncio
async def test_save_increments_version(db):
    document = await document_store.insert_document(db, make_document())
    loaded = await document_store.load_for_update(db, document.id)
    loaded.title = "Changed"

    saved = await document_store.save_document(db, loaded)

    assert saved.version == 2
    stored = await document_store.get_document(db, document.id)
    assert stored.title == "Changed"
    assert stored.version == 2


@pytest.mark.asyncio
async def test_save_with_stale_version_raises_conflict(db):
    document = await document_store.insert_document(db, make_document())
    first = await document_store.load_for_update(db, document.id)
    second = await document_store.load_for_update(db, document.id)

    first.title = "first writer"
    await document_store.save_document(db, first)

    second.title = "second writer"
    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await document_store.save_document(db, second)
    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    assert (await document_store.get_document(db, document.id)).title == "first writer"


@pytest.mark.asyncio
async def test_save_of_deleted_document_raises_not_found(db):
    document = await document_store.insert_document(db, make_document())
    await document_store.delete_document(db, document.id, expected_version=1)
    with pytest.raises(DocumentNotFoundError):
        await document_store.save_document(db, document)


@pytest.mark.asyncio
async def test_delete_with_stale_version_raises_conflict(db):
    document = await document_store.insert_document(db, make_document())
    with pytest.raises(ConcurrencyConflictError):
        await document_store.delete_document(db, document.id, expected_version=7)
    assert await document_store.get_document(db, document.id) is not None


@pytest.mark.asyncio
async def test_list_documents_filters_and_paginates(db):
    for i in range(5):
        await document_store.insert_document(db, make_document(title=f"Order {i}", created_by="u1"))
    await document_store.insert_document(db, make_document(title="Certificate", type=DocumentType.CERTIFICATE, created_by="u2"))

    items, total = await document_store.list_documents(db, page=1, limit=2, created_by="u1")
    assert total == 5
    assert len(items) == 2

    items, total = await document_store.list_documents(db, page=3, limit=2, created_by="u1")
    assert total == 5
    assert len(items) == 1

    items, total = await document_store.list_documents(db, document_type=DocumentType.CERTIFICATE.value)
    assert total == 1
    assert items[0].created_by == "u2"


@pytest.mark.asyncio
async def test_list_documents_search_is_case_insensitive_on_title_and_number(db):
    await document_store.insert_document(db, make_document(title="Annual Report"))
    await document_store.insert_document(db, make_document(title="Other", number="ENR-2024-0001"))
    await document_store.insert_document(db, make_document(title="Unrelated"))

    items, total = await document_store.list_documents(db, search="annual")
    assert total == 1 and items[0].title == "Annual Report"

    items, total = await document_store.list_documents(db, search="enr-2024")
    assert total == 1 and items[0].number == "ENR-2024-0001"


def test_build_list_filter_escapes_regex_characters():
    query_filter = document_store.build_list_filter(search=" a.b* ", status="DRAFT")
    assert query_filter["status"] == "DRAFT"
    assert query_filter["$or"][0]["title"]["$regex"] == r"a\.b\*"


@pytest.mark.asyncio
async def test_next_sequence_value_counts_per_key(db):
    assert await document_store.next_sequence_value(db, "STC-2024") == 1
    assert await document_store.next_sequence_value(db, "STC-2024") == 2
    assert await document_store.next_sequence_value(db, "ENR-2024") == 1
