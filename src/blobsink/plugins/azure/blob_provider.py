# src/blobsink/plugins/azure/blob_provider.py
"""Azure Blob Storage provider.

Buckets map to containers. A blob is buffered in memory while the pipeline
writes it and uploaded with a single upload_blob call when the write block
exits normally; an abandoned write uploads nothing.

IMPORTANT: Azure SDK calls are an external system boundary. Transient
failures (throttling, timeouts, 5xx, connection errors) are retried through
RetryManager; everything else surfaces as BlobIOError.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, BinaryIO

from blobsink.contracts.errors import BlobIOError
from blobsink.core.logging import get_logger
from blobsink.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager
from blobsink.plugins.azure.auth import AzureAuthConfig

if TYPE_CHECKING:
    from azure.storage.blob import BlobServiceClient

log = get_logger(__name__)

_TRANSIENT_STATUS = frozenset({408, 429, 500, 502, 503, 504})
_TRANSIENT_ERRORS = frozenset({"ServiceRequestError", "ServiceResponseError", "ServiceRequestTimeoutError", "ServiceResponseTimeoutError"})


def is_transient_azure_error(error: BaseException) -> bool:
    """Classify an Azure SDK error as worth retrying."""
    if type(error).__name__ in _TRANSIENT_ERRORS:
        return True
    status = getattr(error, "status_code", None)
    return isinstance(status, int) and status in _TRANSIENT_STATUS


class AzureBlobProvider:
    """Uploads blobs to Azure Blob Storage."""

    def __init__(
        self,
        auth: AzureAuthConfig,
        *,
        overwrite: bool = True,
        retry: RetryConfig | None = None,
        service_client: BlobServiceClient | None = None,
    ) -> None:
        self._auth = auth
        self._overwrite = overwrite
        self._retry = RetryManager(retry if retry is not None else RetryConfig())
        self._service_client = service_client

    def _client(self) -> BlobServiceClient:
        if self._service_client is None:
            self._service_client = self._auth.create_blob_service_client()
        return self._service_client

    @contextmanager
    def open(self, bucket: str, name: str) -> Iterator[BinaryIO]:
        buffer = io.BytesIO()
        yield buffer
        self._upload(bucket, name, buffer.getvalue())

    def _upload(self, bucket: str, name: str, data: bytes) -> None:
        blob = f"{bucket}/{name}"

        def on_retry(attempt: int, error: BaseException) -> None:
            log.warning("Retrying blob upload", blob=blob, attempt=attempt, error=str(error))

        try:
            blob_client = self._client().get_container_client(bucket).get_blob_client(name)
            self._retry.execute_with_retry(
                lambda: blob_client.upload_blob(data, overwrite=self._overwrite),
                is_retryable=is_transient_azure_error,
                on_retry=on_retry,
            )
        except MaxRetriesExceeded as e:
            raise BlobIOError(f"Upload of {blob} failed after {e.attempts} attempts: {e.last_error}") from e
        except ImportError:
            raise
        except Exception as e:
            if type(e).__name__ == "ResourceExistsError":
                raise BlobIOError(f"Blob {blob} already exists and overwrite is disabled") from e
            raise BlobIOError(f"Upload of {blob} failed: {e}") from e

        log.debug("Uploaded blob", blob=blob, size_bytes=len(data), auth_method=str(self._auth.auth_method))
