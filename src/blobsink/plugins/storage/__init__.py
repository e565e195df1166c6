"""Blob sink providers and the factory that picks one from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from blobsink.contracts.storage import BlobSinkProvider
from blobsink.plugins.storage.local_provider import LocalBlobProvider

if TYPE_CHECKING:
    from blobsink.core.config import StorageSettings


def create_provider(settings: StorageSettings) -> BlobSinkProvider:
    """Build the provider named by storage.kind.

    Raises:
        ValueError: If the Azure auth fields are invalid.
        ImportError: If kind=azure and the azure extra is not installed.
    """
    if settings.kind == "local":
        # validated: root is set for kind=local
        assert settings.root is not None
        return LocalBlobProvider(settings.root)

    from blobsink.engine.retry import RetryConfig
    from blobsink.plugins.azure.auth import AzureAuthConfig
    from blobsink.plugins.azure.blob_provider import AzureBlobProvider

    auth = AzureAuthConfig.model_validate(settings.azure_auth_fields())
    return AzureBlobProvider(auth, overwrite=settings.overwrite, retry=RetryConfig.from_settings(settings.retry))


__all__ = ["LocalBlobProvider", "create_provider"]
