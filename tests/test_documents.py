"""Unit tests for inkwell.documents.service — CRUD, visibility, share links, export and import."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from inkwell.engine.errors import InkwellSecurityError, InkwellSessionError, InkwellValidationError


class TestCreateAndUpdate:
    def test_create_root_document(self, services, owner):
        doc_id = services.documents.create("Notes")
        doc = services.documents.get_by_id(doc_id)
        assert doc.title == "Notes"
        assert doc.user_id == "user_owner"
        assert doc.parent_id is None
        assert doc.is_archived is False
        assert doc.is_published is False

    def test_create_under_foreign_parent(self, services, owner, make_document):
        parent = make_document(user_id="someone_else")
        with pytest.raises(InkwellSecurityError):
            services.documents.create("child", parent_id=parent)

    def test_update_patches_given_fields(self, services, owner):
        doc_id = services.documents.create("Draft")
        services.documents.update(doc_id, icon="🚀")
        updated = services.documents.update(doc_id, title="Final", tags=["a", "b"])

        assert updated.title == "Final"
        assert updated.icon == "🚀"
        assert updated.tags == ["a", "b"]

    def test_update_rejects_bad_input(self, services, owner):
        doc_id = services.documents.create("Draft")
        with pytest.raises(InkwellValidationError):
            services.documents.update(doc_id, tags="not-a-list")

    def test_stranger_cannot_update(self, services, owner, as_stranger):
        doc_id = services.documents.create("Mine")
        with as_stranger():
            with pytest.raises(InkwellSecurityError):
                services.documents.update(doc_id, title="Theirs")


class TestVisibility:
    def test_private_hidden(self, services, owner, as_stranger):
        doc_id = services.documents.create("Private")
        with as_stranger():
            assert services.documents.get_by_id(doc_id) is None

    def test_missing_is_none(self, services, owner):
        assert services.documents.get_by_id(777) is None

    def test_published_visible_without_login(self, services, make_document):
        doc_id = make_document(is_published=True)
        assert services.documents.get_by_id(doc_id).id == doc_id

    def test_published_but_archived_hidden(self, services, make_document):
        doc_id = make_document(is_published=True, is_archived=True)
        assert services.documents.get_by_id(doc_id) is None

    def test_sidebar(self, services, owner, make_document):
        root = make_document("root")
        make_document("child", parent_id=root)
        make_document("archived", is_archived=True)
        make_document("theirs", user_id="other")

        assert [d.title for d in services.documents.get_sidebar()] == ["root"]
        assert [d.title for d in services.documents.get_sidebar(root)] == ["child"]


class TestSharing:
    def test_enable_generates_token_once(self, services, owner, config):
        doc_id = services.documents.create("Shared")
        token = services.documents.update_sharing(doc_id, True, "view")

        assert len(token) == config.sharing.token_length
        assert services.documents.update_sharing(doc_id, True, "comment") == token

    def test_shared_document_lookup(self, services, owner):
        doc_id = services.documents.create("Shared")
        token = services.documents.update_sharing(doc_id, True, "view")

        shared = services.documents.get_shared_document(token)
        assert shared.id == doc_id
        assert shared.share_permission == "view"

    def test_disable_clears_link(self, services, owner):
        doc_id = services.documents.create("Shared")
        token = services.documents.update_sharing(doc_id, True, "edit")

        assert services.documents.update_sharing(doc_id, False) is None
        assert services.documents.get_shared_document(token) is None
        doc = services.documents.get_by_id(doc_id)
        assert doc.share_token is None
        assert doc.share_permission is None

    def test_expired_link(self, services, owner, clock):
        doc_id = services.documents.create("Shared")
        token = services.documents.update_sharing(
            doc_id, True, "view", share_expires_at=clock() + timedelta(hours=1)
        )
        assert services.documents.get_shared_document(token) is not None

        clock.advance(hours=2)
        assert services.documents.get_shared_document(token) is None

    def test_invalid_permission(self, services, owner):
        doc_id = services.documents.create("Shared")
        with pytest.raises(InkwellValidationError):
            services.documents.update_sharing(doc_id, True, "admin")

    def test_unknown_token(self, services):
        assert services.documents.get_shared_document("nope") is None


class TestExport:
    def test_active_only_newest_first(self, services, owner, make_document):
        first = make_document("first")
        second = make_document("second")
        make_document("archived", is_archived=True)
        make_document("theirs", user_id="other")

        exported = services.documents.export_documents()

        assert [d.id for d in exported] == [second, first]
        assert all(d.blocks is None for d in exported)

    def test_include_archived(self, services, owner, make_document):
        make_document("live")
        make_document("archived", is_archived=True)

        titles = [d.title for d in services.documents.export_documents(include_archived=True)]
        assert titles == ["archived", "live"]

    def test_with_blocks_in_position_order(self, services, owner, editor_blocks):
        doc_id = services.documents.create("With blocks")
        empty_id = services.documents.create("Empty")
        services.blocks.sync_blocks(doc_id, editor_blocks("a", "b", "c"))

        exported = {d.id: d for d in services.documents.export_documents(include_blocks=True)}

        texts = [b.content[0]["text"] for b in exported[doc_id].blocks]
        assert texts == ["a", "b", "c"]
        assert [b.position for b in exported[doc_id].blocks] == [0, 1, 2]
        assert exported[empty_id].blocks == []

    def test_requires_login(self, services):
        with pytest.raises(InkwellSessionError):
            services.documents.export_documents()


class TestImport:
    def test_creates_documents_and_blocks(self, services, owner):
        result = services.documents.import_documents([
            {
                "source_id": "old-1",
                "title": "Imported",
                "icon": "📄",
                "tags": ["x"],
                "blocks": [
                    {"type": "heading", "content": "second", "position": 7},
                    {"content": "first", "position": 3},
                    {"content": "third"},
                ],
            },
        ])

        assert result.to_dict() == {"success": 1, "failed": 0, "skipped": 0}
        doc_id = result.id_map["old-1"]
        doc = services.documents.get_by_id(doc_id)
        assert doc.icon == "📄"
        assert doc.tags == ["x"]
        assert doc.is_published is False

        blocks = services.blocks.get_document_blocks(doc_id)
        assert [b.content for b in blocks] == ["third", "first", "second"]
        assert [b.position for b in blocks] == [0, 1, 2]
        assert [b.type for b in blocks] == ["paragraph", "paragraph", "heading"]

    def test_round_trip_keeps_hierarchy(self, services, owner, as_stranger):
        parent = services.documents.create("Parent")
        services.documents.create("Child", parent_id=parent)
        payload = [
            {
                "source_id": d.id,
                "title": d.title,
                "parent_source_id": d.parent_id,
                "blocks": [b.model_dump() for b in d.blocks],
            }
            for d in services.documents.export_documents(include_blocks=True)
        ]

        with as_stranger():
            result = services.documents.import_documents(payload)
            by_title = {d.title: d for d in services.documents.export_documents()}

        assert result.success == 2
        assert by_title["Child"].parent_id == by_title["Parent"].id
        assert by_title["Parent"].parent_id is None
        assert by_title["Parent"].user_id == "user_stranger"

    def test_same_title_skipped_but_linkable(self, services, owner):
        existing = services.documents.create("Inbox")

        result = services.documents.import_documents([
            {"source_id": "a", "title": "Inbox"},
            {"source_id": "b", "title": "Note", "parent_source_id": "a"},
        ])

        assert result.to_dict() == {"success": 1, "failed": 0, "skipped": 1}
        assert result.id_map["a"] == existing
        assert services.documents.get_by_id(result.id_map["b"]).parent_id == existing
        assert len(services.documents.export_documents()) == 2

    def test_invalid_batch_writes_nothing(self, services, owner):
        with pytest.raises(InkwellValidationError):
            services.documents.import_documents([
                {"title": "Fine"},
                {"title": ""},
            ])
        assert services.documents.export_documents(include_archived=True) == []

    def test_failed_document_does_not_stop_batch(self, services, owner):
        from sqlalchemy.exc import OperationalError

        from inkwell.documents.service import DocumentService

        original = DocumentService._insert_imported

        def flaky(self, session, item, user_id):
            if item.title == "Broken":
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))
            return original(self, session, item, user_id)

        with patch.object(DocumentService, "_insert_imported", flaky), \
                patch("inkwell.documents.service.log") as log_mock:
            result = services.documents.import_documents([
                {"title": "Before"},
                {"title": "Broken"},
                {"title": "After"},
            ])

        assert result.to_dict() == {"success": 2, "failed": 1, "skipped": 0}
        titles = {d.title for d in services.documents.export_documents()}
        assert titles == {"Before", "After"}
        entry = log_mock.call_args.args[0]
        assert entry.data["event"] == "documents_imported"
        assert entry.data["failed"] == 1
