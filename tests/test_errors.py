"""Unit tests for inkwell.engine.errors — Error hierarchy & serialization."""

import json

import pytest

from inkwell.engine.errors import (
    InkwellConfigError,
    InkwellError,
    InkwellNotFoundError,
    InkwellRecordError,
    InkwellSecurityError,
    InkwellSessionError,
    InkwellValidationError,
)


class TestInkwellError:
    """Base error class tests."""

    def test_basic_creation(self):
        err = InkwellError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "InkwellError"
        assert err.execution_id is None
        assert err.object_ref is None

    def test_context_fields(self):
        err = InkwellError(
            "fail",
            execution_id="exec_abc",
            object_ref="documents.7",
            object_type="documents",
            user_id="user_1",
        )
        assert err.execution_id == "exec_abc"
        assert err.object_ref == "documents.7"
        assert err.object_type == "documents"
        assert err.user_id == "user_1"

    def test_to_dict(self):
        err = InkwellError("fail", execution_id="exec_1", object_ref="documents.1", document_id=1)
        d = err.to_dict()
        assert d["error_type"] == "InkwellError"
        assert d["message"] == "fail"
        assert d["execution_id"] == "exec_1"
        assert d["context"] == {"document_id": "1"}
        assert "timestamp" in d

    def test_to_json(self):
        parsed = json.loads(InkwellError("fail").to_json())
        assert parsed["error_type"] == "InkwellError"
        assert parsed["message"] == "fail"

    def test_repr(self):
        r = repr(InkwellError("fail", object_ref="versions.3", execution_id="exec_1"))
        assert "InkwellError" in r
        assert "versions.3" in r
        assert "exec_1" in r


class TestSubclasses:
    @pytest.mark.parametrize("cls", [
        InkwellSessionError,
        InkwellSecurityError,
        InkwellNotFoundError,
        InkwellValidationError,
        InkwellRecordError,
        InkwellConfigError,
    ])
    def test_all_inherit_base(self, cls):
        err = cls("x")
        assert isinstance(err, InkwellError)
        assert err.error_type == cls.__name__

    def test_security_error_permission(self):
        err = InkwellSecurityError("Unauthorized", required_permission="edit", user_id="u")
        assert err.required_permission == "edit"
        assert err.to_dict()["required_permission"] == "edit"

    def test_not_found_record(self):
        err = InkwellNotFoundError("Version not found", record_type="document_version", record_id=4)
        assert err.record_type == "document_version"
        assert err.record_id == 4

    def test_validation_errors_serialized(self):
        err = InkwellValidationError("bad", validation_errors=[{"loc": ["type"]}])
        assert err.to_dict()["validation_errors"] == [{"loc": ["type"]}]

    def test_record_error_operation(self):
        err = InkwellRecordError("Could not complete sync_blocks. Please retry.", operation="sync_blocks")
        assert err.operation == "sync_blocks"


class TestStorageFailureMapping:
    def test_sqlalchemy_error_becomes_record_error(self, services, owner, make_document):
        from unittest.mock import patch

        from sqlalchemy.exc import OperationalError

        doc = make_document()
        with patch(
            "inkwell.documents.blocks.fetch_ordered_blocks",
            side_effect=OperationalError("SELECT", {}, Exception("db gone")),
        ):
            with pytest.raises(InkwellRecordError, match="Please retry") as exc:
                services.blocks.sync_blocks(doc, [{"type": "paragraph"}])
        assert exc.value.operation == "sync_blocks"
