"""Content-derived identifiers for observations, findings and result streams.

An identifier is a pure function of a string attribute map: the same
attributes, in any insertion order, always give the same UUID. Repeated runs
over unchanged servers and policies therefore reproduce the same identifiers,
which is what lets consumers deduplicate evidence and track it over time.
"""
from __future__ import annotations
import hashlib
import json
import uuid
from typing import Dict, Mapping, Optional, TYPE_CHECKING

from ..errors import SeedingError

if TYPE_CHECKING:
    from ..azure.normalizer import ResourceRecord
    from ..policy.base import Policy

SERVICE = "azure-postgres-flexible-server"
RESOURCE_TYPE = "azure-cloud--postgresql"

FINDING_IDENTITY_SHARED = "shared"
FINDING_IDENTITY_PER_VIOLATION = "per-violation"
FINDING_IDENTITY_MODES = (FINDING_IDENTITY_SHARED, FINDING_IDENTITY_PER_VIOLATION)


def seeded_uuid(attributes: Mapping[str, str]) -> uuid.UUID:
    if not attributes:
        raise SeedingError("cannot derive an identifier from an empty attribute map")
    for key, value in attributes.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise SeedingError(f"identity attributes must be strings, got {key!r}={value!r}")
    canonical = json.dumps(sorted(attributes.items()), separators=(",", ":"), ensure_ascii=False)
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return uuid.UUID(bytes=digest[:16], version=4)


def observation_attributes(record: "ResourceRecord", policy: "Policy", policy_path: str,
                           service: str = SERVICE) -> Dict[str, str]:
    return {
        "type": RESOURCE_TYPE,
        "service": service,
        "instance-id": record.instance_id,
        "package": policy.package,
        "policy-file": policy.file,
        "_policy": policy_path,
    }


def finding_attributes(observation_attrs: Mapping[str, str], mode: str = FINDING_IDENTITY_SHARED,
                       violation_index: Optional[int] = None) -> Dict[str, str]:
    """In ``shared`` mode findings reuse the observation key set unchanged, so every
    finding of one policy run shares the observation's UUID. ``per-violation``
    folds in a discriminator so each violation gets its own identifier."""
    attrs = dict(observation_attrs)
    if mode == FINDING_IDENTITY_PER_VIOLATION:
        attrs["_finding"] = "true"
        attrs["_violation"] = "" if violation_index is None else str(violation_index)
    elif mode != FINDING_IDENTITY_SHARED:
        raise SeedingError(f"unknown finding identity mode: {mode}")
    return attrs


def stream_attributes(policy_path: str) -> Dict[str, str]:
    return {"type": RESOURCE_TYPE, "_policy": policy_path}
