from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Tuple

from ..errors import MissingFieldError, NormalizationError
from ..utils.resource_ids import normalise_location, parse_resource_id

# policy-facing property name -> SDK attribute
SCALAR_PROPERTIES = {
    "fullyQualifiedDomainName": "fully_qualified_domain_name",
    "version": "version",
    "administratorLogin": "administrator_login",
    "availabilityZone": "availability_zone",
    "state": "state",
}
NESTED_PROPERTIES = {
    "backup": "backup",
    "network": "network",
    "highAvailability": "high_availability",
    "maintenanceWindow": "maintenance_window",
    "storage": "storage",
}
MANDATORY_FIELDS = ("id", "location", "name", "type")


@dataclass(frozen=True)
class Tag:
    key: str
    value: str


@dataclass(frozen=True)
class ResourceRecord:
    instance_id: str
    location: str
    name: str
    type: str
    resource_group: str
    subscription_id: str
    properties: Dict[str, Any] = field(default_factory=dict)
    tags: Tuple[Tag, ...] = ()

    @property
    def labels(self) -> Dict[str, str]:
        return {
            "provider": "azure",
            "type": "database",
            "instance-id": self.instance_id,
            "resource-group": self.resource_group,
            "location": normalise_location(self.location),
            "name": self.name,
            "subscription_id": self.subscription_id,
        }

    def to_policy_input(self) -> Dict[str, Any]:
        """The document policies see as ``input``."""
        return {
            "InstanceID": self.instance_id,
            "Location": self.location,
            "Name": self.name,
            "Properties": self.properties,
            "Tags": [{"Key": t.key, "Value": t.value} for t in self.tags],
            "Type": self.type,
        }


def normalize_server(server) -> ResourceRecord:
    """Flatten an SDK ``Server`` into a ResourceRecord of primitives and maps."""
    for name in MANDATORY_FIELDS:
        if not getattr(server, name, None):
            raise MissingFieldError(name, {"instance-id": str(getattr(server, "id", "") or "")})

    try:
        id_parts = parse_resource_id(server.id)
    except ValueError as e:
        raise NormalizationError(str(e), {"instance-id": server.id}) from e

    properties: Dict[str, Any] = {}
    try:
        for key, attr in SCALAR_PROPERTIES.items():
            properties[key] = to_primitive(getattr(server, attr, None))
        for key, attr in NESTED_PROPERTIES.items():
            properties[key] = to_primitive(getattr(server, attr, None))
    except TypeError as e:
        raise NormalizationError(f"unable to flatten server properties: {e}", {"instance-id": server.id}) from e

    return ResourceRecord(
        instance_id=server.id,
        location=server.location,
        name=server.name,
        type=server.type,
        resource_group=id_parts.get("resourceGroups", ""),
        subscription_id=id_parts.get("subscriptions", ""),
        properties=properties,
        tags=normalize_tags(getattr(server, "tags", None)),
    )


def normalize_tags(tags) -> Tuple[Tag, ...]:
    if not tags:
        return ()
    return tuple(Tag(key=str(k), value="" if v is None else str(v)) for k, v in sorted(tags.items()))


def to_primitive(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_primitive(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_primitive(v) for v in value]
    if hasattr(value, "serialize"):
        # msrest-style SDK model; serialize() gives the REST (camelCase) shape
        return to_primitive(value.serialize(keep_readonly=True))
    raise TypeError(f"unsupported property type {type(value).__name__}")
