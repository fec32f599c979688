import pytest
from minio.error import S3Error, ServerError
from urllib3.exceptions import ProtocolError

from fieldsign import storage as storage_module
from fieldsign.errors import StorageError
from fieldsign.storage import ObjectNotFound, backoff_delay, is_retryable


def s3_error(code):
    return S3Error(
        code=code, message=f"{code} message", resource="/fieldsign/key",
        request_id="req-1", host_id="host-1", response=None,
    )


class FlakyClient:
    def __init__(self, failures):
        self.failures = list(failures)
        self.calls = 0
        self.objects = {}

    def bucket_exists(self, bucket):
        return True

    def put_object(self, bucket, key, data, length, content_type=None):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        self.objects[key] = data.read()


@pytest.fixture
def sleeps(monkeypatch):
    delays = []
    monkeypatch.setattr(storage_module.time, "sleep", delays.append)
    return delays


def install(monkeypatch, failures):
    client = FlakyClient(failures)
    monkeypatch.setattr(storage_module, "_client", client)
    return client


def test_retryable_classification():
    assert is_retryable(s3_error("SlowDown"))
    assert is_retryable(s3_error("InternalError"))
    assert not is_retryable(s3_error("AccessDenied"))
    assert is_retryable(ServerError(message="bad gateway", status_code=502))
    assert is_retryable(ServerError(message="too many requests", status_code=429))
    assert not is_retryable(ServerError(message="forbidden", status_code=403))
    assert is_retryable(ProtocolError("connection reset"))
    assert is_retryable(ConnectionRefusedError())
    assert not is_retryable(ValueError("nope"))


def test_backoff_is_exponential_and_capped():
    assert [backoff_delay(n) for n in (1, 2, 3)] == [0.1, 0.2, 0.4]
    assert backoff_delay(10) == 3.0


def test_transient_failure_is_retried(monkeypatch, sleeps):
    client = install(monkeypatch, [s3_error("SlowDown"), ServerError(message="unavailable", status_code=503)])
    storage_module.put_bytes("docs/a.pdf", b"pdf")
    assert client.calls == 3
    assert client.objects["docs/a.pdf"] == b"pdf"
    assert sleeps == [0.1, 0.2]


def test_retries_stop_after_three_attempts(monkeypatch, sleeps):
    client = install(monkeypatch, [ServerError(message="unavailable", status_code=503)] * 5)
    with pytest.raises(StorageError) as exc:
        storage_module.put_bytes("docs/a.pdf", b"pdf")
    assert client.calls == 3
    assert exc.value.retryable is True
    assert exc.value.attempts == 3
    assert "docs/a.pdf" in str(exc.value)


def test_client_errors_are_not_retried(monkeypatch, sleeps):
    client = install(monkeypatch, [s3_error("AccessDenied")])
    with pytest.raises(StorageError) as exc:
        storage_module.put_bytes("docs/a.pdf", b"pdf")
    assert client.calls == 1
    assert sleeps == []
    assert exc.value.retryable is False
    assert "AccessDenied" in str(exc.value)


def test_missing_object_is_reported_as_not_found(monkeypatch, sleeps):
    class MissingClient:
        def get_object(self, bucket, key):
            raise s3_error("NoSuchKey")

    monkeypatch.setattr(storage_module, "_client", MissingClient())
    with pytest.raises(ObjectNotFound):
        storage_module.get_bytes("docs/missing.pdf")
    assert sleeps == []
