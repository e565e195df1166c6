"""Azure Blob Storage support (requires the azure extra)."""

from blobsink.plugins.azure.auth import AuthMethod, AzureAuthConfig
from blobsink.plugins.azure.blob_provider import AzureBlobProvider, is_transient_azure_error

__all__ = ["AuthMethod", "AzureAuthConfig", "AzureBlobProvider", "is_transient_azure_error"]
