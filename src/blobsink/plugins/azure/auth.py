# src/blobsink/plugins/azure/auth.py
"""Azure authentication for the blob storage provider.

Exactly one of four methods must be configured:
1. connection_string
2. sas_token + account_url
3. use_managed_identity + account_url
4. tenant_id + client_id + client_secret + account_url (service principal)

Credentials belong in environment variables referenced as ${VAR} from the
settings file, never in the file itself.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Self, cast

from pydantic import BaseModel, model_validator

if TYPE_CHECKING:
    from azure.storage.blob import BlobServiceClient


class AuthMethod(StrEnum):
    CONNECTION_STRING = "connection_string"
    SAS_TOKEN = "sas_token"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


_METHODS_HINT = (
    "connection_string, sas_token + account_url, "
    "managed identity (use_managed_identity + account_url), or "
    "service principal (tenant_id + client_id + client_secret + account_url)"
)


def _is_set(value: str | None) -> bool:
    """Whitespace-only strings count as unset."""
    return value is not None and bool(value.strip())


class AzureAuthConfig(BaseModel):
    """Azure credentials for a storage account.

    Example configurations:

        connection_string: "${AZURE_STORAGE_CONNECTION_STRING}"

        sas_token: "${AZURE_STORAGE_SAS_TOKEN}"
        account_url: "https://myaccount.blob.core.windows.net"

        use_managed_identity: true
        account_url: "https://myaccount.blob.core.windows.net"
    """

    model_config = {"extra": "forbid", "frozen": True}

    connection_string: str | None = None
    sas_token: str | None = None
    use_managed_identity: bool = False
    account_url: str | None = None
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None

    @model_validator(mode="after")
    def validate_auth_method(self) -> Self:
        """Ensure exactly one auth method is fully configured.

        Raises:
            ValueError: If zero or several methods are configured, or a
                service principal is only partly configured.
        """
        principal_fields = {"tenant_id": self.tenant_id, "client_id": self.client_id, "client_secret": self.client_secret}
        present = [name for name, value in principal_fields.items() if _is_set(value)]
        if present and len(present) < len(principal_fields):
            missing = [name for name in principal_fields if name not in present]
            raise ValueError(f"Service Principal auth requires all fields. Missing: {', '.join(missing)}")

        if _is_set(self.sas_token) and not _is_set(self.account_url):
            raise ValueError("SAS token auth requires account_url. Example: https://myaccount.blob.core.windows.net")
        if self.use_managed_identity and not _is_set(self.account_url):
            raise ValueError("Managed Identity auth requires account_url. Example: https://myaccount.blob.core.windows.net")
        if present and not _is_set(self.account_url):
            raise ValueError("Service Principal auth requires account_url")

        active = self._configured_methods()
        if not active:
            raise ValueError(f"No authentication method configured. Provide one of: {_METHODS_HINT}")
        if len(active) > 1:
            raise ValueError(f"Multiple authentication methods configured ({', '.join(active)}). Provide exactly one of: {_METHODS_HINT}")
        return self

    def _configured_methods(self) -> list[AuthMethod]:
        methods = []
        if _is_set(self.connection_string):
            methods.append(AuthMethod.CONNECTION_STRING)
        if _is_set(self.sas_token):
            methods.append(AuthMethod.SAS_TOKEN)
        if self.use_managed_identity:
            methods.append(AuthMethod.MANAGED_IDENTITY)
        if _is_set(self.tenant_id):
            methods.append(AuthMethod.SERVICE_PRINCIPAL)
        return methods

    @property
    def auth_method(self) -> AuthMethod:
        return self._configured_methods()[0]

    def create_blob_service_client(self) -> BlobServiceClient:
        """Create a BlobServiceClient for the configured method.

        Raises:
            ImportError: If the azure extra is not installed.
        """
        try:
            from azure.storage.blob import BlobServiceClient
        except ImportError as e:
            raise ImportError("azure-storage-blob is required for Azure storage. Install with: pip install 'blobsink[azure]'") from e

        method = self.auth_method
        if method is AuthMethod.CONNECTION_STRING:
            return BlobServiceClient.from_connection_string(cast(str, self.connection_string))

        account_url = cast(str, self.account_url)
        if method is AuthMethod.SAS_TOKEN:
            sas_token = cast(str, self.sas_token)
            sas = sas_token if sas_token.startswith("?") else f"?{sas_token}"
            return BlobServiceClient(f"{account_url.rstrip('/')}{sas}")

        try:
            from azure.identity import ClientSecretCredential, DefaultAzureCredential
        except ImportError as e:
            raise ImportError("azure-identity is required for credential-based auth. Install with: pip install 'blobsink[azure]'") from e

        if method is AuthMethod.MANAGED_IDENTITY:
            return BlobServiceClient(account_url, credential=DefaultAzureCredential())
        credential = ClientSecretCredential(
            tenant_id=cast(str, self.tenant_id),
            client_id=cast(str, self.client_id),
            client_secret=cast(str, self.client_secret),
        )
        return BlobServiceClient(account_url, credential=credential)
