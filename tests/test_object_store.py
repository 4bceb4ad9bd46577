"""Object store gateways: local filesystem and Supabase Storage REST."""

from unittest.mock import MagicMock

import pytest
import requests

from opready.core.exceptions import StorageError
from opready.integrations.object_store import (
    LocalObjectStore,
    SupabaseStorageGateway,
    build_object_store,
)


def _response(status=200, content=b"", text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.content = content
    resp.text = text
    resp.reason = "reason"
    return resp


class TestLocalObjectStore:
    def test_put_get_remove(self, tmp_path):
        store = LocalObjectStore(str(tmp_path), "evidence")
        assert store.put("c1/1-a.txt", b"hello") is None
        assert (tmp_path / "evidence" / "c1" / "1-a.txt").read_bytes() == b"hello"
        assert store.get("c1/1-a.txt") == b"hello"
        store.remove("c1/1-a.txt")
        assert not store.exists("c1/1-a.txt")

    def test_no_overwrite(self, tmp_path):
        store = LocalObjectStore(str(tmp_path))
        store.put("c1/a", b"1")
        with pytest.raises(StorageError):
            store.put("c1/a", b"2")

    def test_remove_missing(self, tmp_path):
        with pytest.raises(StorageError):
            LocalObjectStore(str(tmp_path)).remove("c1/none")

    @pytest.mark.parametrize("path", ["", "/abs", "../x", "c1/../../x", "a\\b"])
    def test_rejects_unsafe_paths(self, tmp_path, path):
        with pytest.raises(StorageError):
            LocalObjectStore(str(tmp_path)).put(path, b"x")


class TestSupabaseStorageGateway:
    def _gateway(self, session):
        return SupabaseStorageGateway("https://proj.supabase.co/", "key", bucket="evidence", session=session)

    def test_put_returns_public_url(self):
        session = MagicMock()
        session.request.return_value = _response(200)
        url = self._gateway(session).put("c1/1-a b.pdf", b"x", "application/pdf")

        assert url == "https://proj.supabase.co/storage/v1/object/public/evidence/c1/1-a%20b.pdf"
        method, called_url = session.request.call_args[0]
        kwargs = session.request.call_args[1]
        assert method == "POST"
        assert called_url == "https://proj.supabase.co/storage/v1/object/evidence/c1/1-a%20b.pdf"
        assert kwargs["headers"]["Authorization"] == "Bearer key"
        assert kwargs["headers"]["x-upsert"] == "false"
        assert kwargs["headers"]["Content-Type"] == "application/pdf"

    def test_http_error_raises(self):
        session = MagicMock()
        session.request.return_value = _response(409, text="Duplicate")
        with pytest.raises(StorageError, match="409"):
            self._gateway(session).put("c1/a", b"x")

    def test_transport_error_raises(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(StorageError):
            self._gateway(session).remove("c1/a")

    def test_remove_sends_prefixes(self):
        session = MagicMock()
        session.request.return_value = _response(200)
        self._gateway(session).remove("c1/a")
        method, url = session.request.call_args[0]
        assert method == "DELETE"
        assert url == "https://proj.supabase.co/storage/v1/object/evidence"
        assert session.request.call_args[1]["json"] == {"prefixes": ["c1/a"]}

    def test_requires_credentials(self):
        with pytest.raises(StorageError):
            SupabaseStorageGateway("", "")


class TestBuildObjectStore:
    def test_local_backend(self, tmp_path):
        store = build_object_store({"OBJECT_STORE_BACKEND": "local", "OBJECT_STORE_ROOT": str(tmp_path)})
        assert isinstance(store, LocalObjectStore)

    def test_supabase_backend(self):
        store = build_object_store({
            "OBJECT_STORE_BACKEND": "supabase",
            "SUPABASE_URL": "https://proj.supabase.co",
            "SUPABASE_SERVICE_KEY": "k",
            "EVIDENCE_BUCKET": "oar",
        })
        assert isinstance(store, SupabaseStorageGateway)
        assert store.bucket == "oar"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_object_store({"OBJECT_STORE_BACKEND": "s3"})
