from __future__ import annotations
from typing import Dict


def parse_resource_id(resource_id: str) -> Dict[str, str]:
    """Split an ARM resource ID into its segment pairs.

    '/subscriptions/s1/resourceGroups/rg1/providers/Microsoft.DBforPostgreSQL/flexibleServers/db1'
    becomes {'subscriptions': 's1', 'resourceGroups': 'rg1', 'providers': 'Microsoft.DBforPostgreSQL',
    'flexibleServers': 'db1'}.
    """
    if not resource_id:
        raise ValueError("resource ID cannot be empty")
    parts = resource_id.strip("/").split("/")
    if len(parts) % 2 != 0:
        raise ValueError(f"invalid Azure resource ID format: {resource_id}")
    return {parts[i]: parts[i + 1] for i in range(0, len(parts), 2)}


def normalise_location(location: str) -> str:
    """'UK South' and 'uksouth' are the same region depending on which API reports it."""
    return location.replace(" ", "").lower()
