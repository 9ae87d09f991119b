"""
Tests for password hashing and the document store lifecycle
"""
import logging
from unittest.mock import MagicMock

import mongomock
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from pymongo.errors import OperationFailure

from core.database import DocumentStore, get_db, parse_object_id, serialize_document
from core.exceptions import NotConnectedError, ValidationError
from core.security import get_password_hash, verify_legacy_password, verify_password


class TestPasswordHashing:

    def test_hash_and_verify(self):
        hashed = get_password_hash("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("s3cret", "not-a-bcrypt-hash") is False

    def test_legacy_plaintext_comparison(self):
        assert verify_legacy_password("abc", "abc")
        assert not verify_legacy_password("abc", "abd")


class TestDocumentStore:

    def test_handle_before_connect(self):
        store = DocumentStore(client=mongomock.MongoClient())
        assert store.connected is False
        with pytest.raises(NotConnectedError):
            store.get_handle()
        assert store.ping() is False

    def test_connect_creates_indexes_and_close_resets(self):
        store = DocumentStore(db_name="talenttrack_test", client=mongomock.MongoClient())
        db = store.connect()

        assert store.ping() is True
        assert "userId_1" in db["users"].index_information()

        store.close()
        assert store.connected is False

    def test_email_index_is_unique(self, db):
        assert db["users"].index_information()["email_1"]["unique"] is True

    def test_conflicting_existing_index_is_reported_not_raised(self, caplog):
        store = DocumentStore(client=MagicMock())
        store._db = MagicMock()
        store._db.__getitem__.return_value.create_index.side_effect = OperationFailure("conflict", code=85)

        with caplog.at_level(logging.WARNING):
            store.ensure_indexes()

        assert "exists with other options" in caplog.text

    def test_get_db_without_store_is_500(self):
        app = FastAPI()

        @app.get("/needs-db")
        def needs_db(db=Depends(get_db)):
            return {"ok": True}

        response = TestClient(app).get("/needs-db")
        assert response.status_code == 500


class TestDocumentHelpers:

    def test_parse_object_id(self):
        assert str(parse_object_id("65a1f0c2e4b0a1b2c3d4e5f6")) == "65a1f0c2e4b0a1b2c3d4e5f6"
        with pytest.raises(ValidationError):
            parse_object_id("42", label="session")

    def test_serialize_nested_object_ids(self):
        oid = parse_object_id("65a1f0c2e4b0a1b2c3d4e5f6")
        assert serialize_document({"_id": oid, "tags": [oid]}) == {
            "_id": "65a1f0c2e4b0a1b2c3d4e5f6",
            "tags": ["65a1f0c2e4b0a1b2c3d4e5f6"],
        }
