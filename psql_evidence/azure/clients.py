from __future__ import annotations
from typing import Optional

from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.mgmt.rdbms.postgresql_flexibleservers import PostgreSQLManagementClient

AUTH_MODES = ("default", "service_principal")


def build_credential(auth_mode: str, tenant_id: Optional[str] = None, client_id: Optional[str] = None,
                     client_secret: Optional[str] = None):
    """Create an Azure credential.

    auth_mode:
      - 'service_principal' (Tenant/Client/Secret)
      - 'default' (DefaultAzureCredential; supports env vars, Azure CLI, managed identity, etc.)
    """
    if auth_mode == "default":
        return DefaultAzureCredential(exclude_interactive_browser_credential=True)
    if auth_mode != "service_principal":
        raise ValueError(f"Unsupported auth mode: {auth_mode}")
    return ClientSecretCredential(tenant_id=tenant_id, client_id=client_id, client_secret=client_secret)


def build_postgres_client(credential, subscription_id: str) -> PostgreSQLManagementClient:
    if not subscription_id:
        raise ValueError("subscription_id is required to list PostgreSQL flexible servers")
    return PostgreSQLManagementClient(credential, subscription_id)
