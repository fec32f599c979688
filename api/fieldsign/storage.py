import io
import logging
import time

from minio import Minio
from minio.error import S3Error, ServerError
from urllib3.exceptions import HTTPError

from .config import (
    MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_SECURE,
    STORAGE_MAX_ATTEMPTS, STORAGE_BACKOFF_BASE, STORAGE_BACKOFF_CAP,
)
from .errors import StorageError

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset({"InternalError", "SlowDown", "ServiceUnavailable", "RequestTimeout"})
MISSING_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NoSuchObject"})

_client = Minio(
    MINIO_ENDPOINT,
    access_key=MINIO_ACCESS_KEY,
    secret_key=MINIO_SECRET_KEY,
    secure=MINIO_SECURE,
)


class ObjectNotFound(StorageError):
    pass


def _status_of(exc):
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status", None)
    return status


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, S3Error):
        if exc.code in RETRYABLE_CODES:
            return True
    elif not isinstance(exc, ServerError):
        # transport failures: refused/reset connections, timeouts
        return isinstance(exc, (HTTPError, OSError))
    status = _status_of(exc)
    return status is not None and (status >= 500 or status == 429)


def backoff_delay(attempt: int) -> float:
    return min(STORAGE_BACKOFF_BASE * 2 ** (attempt - 1), STORAGE_BACKOFF_CAP)


def _describe(exc: Exception) -> str:
    if isinstance(exc, S3Error):
        return f"{exc.code}: {exc.message}"
    return str(exc) or type(exc).__name__


def _with_retry(action: str, key: str, call):
    attempt = 0
    while True:
        attempt += 1
        try:
            return call()
        except (S3Error, ServerError, HTTPError, OSError) as exc:
            if isinstance(exc, S3Error) and exc.code in MISSING_CODES:
                raise ObjectNotFound(f"object {key} does not exist", key=key) from exc
            retryable = is_retryable(exc)
            if not retryable or attempt >= STORAGE_MAX_ATTEMPTS:
                message = f"failed to {action} {key}"
                if retryable:
                    message += f" after {attempt} attempts"
                raise StorageError(
                    f"{message}: {_describe(exc)}", key=key, retryable=retryable, attempts=attempt,
                ) from exc
            delay = backoff_delay(attempt)
            logger.warning(
                "Storage %s of %s failed (attempt %s/%s), retrying in %.2fs: %s",
                action, key, attempt, STORAGE_MAX_ATTEMPTS, delay, _describe(exc),
            )
            time.sleep(delay)


def ensure_bucket():
    if not _client.bucket_exists(MINIO_BUCKET):
        _client.make_bucket(MINIO_BUCKET)


def put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
    def call():
        ensure_bucket()
        _client.put_object(MINIO_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)
    _with_retry("upload", key, call)


def get_bytes(key: str) -> bytes:
    def call():
        resp = _client.get_object(MINIO_BUCKET, key)
        try:
            return resp.read()
        finally:
            resp.close()
            resp.release_conn()
    return _with_retry("download", key, call)


def delete_object(key: str):
    _with_retry("delete", key, lambda: _client.remove_object(MINIO_BUCKET, key))
