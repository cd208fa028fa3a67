import pytest

from core.adapters import storage_adapter
from core.adapters.storage_adapter import IpfsStorageAdapter, StubStorageAdapter
from core.exceptions import PublishError
from storage_stub.models import StubObject

ENDPOINT = "https://pin.example.test/add"


class FakeResponse:

    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self.body = body
        self.text = text

    def json(self):
        if self.body is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.body


@pytest.fixture
def respond(monkeypatch):
    """Answer every pinning request with the given response."""
    def _respond(response):
        monkeypatch.setattr(storage_adapter.requests, "post", lambda url, **kwargs: response)
    return _respond


class TestIpfsStorageAdapter:

    @pytest.mark.parametrize("body", [{"cid": "bafy1"}, {"IpfsHash": "bafy1"}, {"hash": "bafy1"}])
    def test_cid_field_variants(self, respond, body):
        respond(FakeResponse(200, body))
        assert IpfsStorageAdapter(ENDPOINT, "token").upload(b"data") == "bafy1"

    def test_non_json_body(self, respond):
        respond(FakeResponse(200, text="<html>gateway timeout</html>"))
        with pytest.raises(PublishError, match="non-JSON"):
            IpfsStorageAdapter(ENDPOINT, "token").upload(b"data")

    def test_non_object_body(self, respond):
        respond(FakeResponse(201, ["bafy1"]))
        with pytest.raises(PublishError):
            IpfsStorageAdapter(ENDPOINT, "token").upload(b"data")

    def test_missing_cid(self, respond):
        respond(FakeResponse(200, {"ok": True}))
        with pytest.raises(PublishError, match="Missing CID"):
            IpfsStorageAdapter(ENDPOINT, "token").upload(b"data")

    def test_error_status(self, respond):
        respond(FakeResponse(502, text="bad gateway"))
        with pytest.raises(PublishError) as exc:
            IpfsStorageAdapter(ENDPOINT, "token").upload(b"data")
        assert exc.value.context["status"] == 502


@pytest.mark.django_db
class TestStubStorageAdapter:

    def test_upload_is_content_addressed(self):
        storage = StubStorageAdapter()

        first = storage.upload(b"payload", name="bundle-0.json.gz")
        again = storage.upload(b"payload", name="bundle-1.json.gz")

        assert first == again
        assert first.startswith("bafk")
        assert bytes(StubObject.objects.get(content_id=first).data) == b"payload"
        assert storage.upload(b"other") != first
