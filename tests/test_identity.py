import uuid

import pytest

from psql_evidence.errors import SeedingError
from psql_evidence.evidence.identity import (
    FINDING_IDENTITY_PER_VIOLATION, FINDING_IDENTITY_SHARED,
    finding_attributes, observation_attributes, seeded_uuid, stream_attributes,
)
from psql_evidence.policy.base import Policy


ATTRS = {
    "type": "azure-cloud--postgresql",
    "service": "azure-postgres-flexible-server",
    "instance-id": "/subscriptions/s/resourceGroups/rg/providers/x/flexibleServers/db",
    "package": "data.compliance_plugin.backup",
    "policy-file": "backup.rego",
    "_policy": "/policies/bundle",
}


def test_seeded_uuid_is_stable_across_calls():
    assert seeded_uuid(ATTRS) == seeded_uuid(dict(ATTRS))


def test_seeded_uuid_ignores_insertion_order():
    reversed_attrs = dict(reversed(list(ATTRS.items())))
    assert list(reversed_attrs) != list(ATTRS)
    assert seeded_uuid(reversed_attrs) == seeded_uuid(ATTRS)


def test_seeded_uuid_changes_with_content():
    other = {**ATTRS, "_policy": "/policies/other"}
    assert seeded_uuid(other) != seeded_uuid(ATTRS)


def test_seeded_uuid_is_rfc4122_version_4():
    value = seeded_uuid(ATTRS)
    assert isinstance(value, uuid.UUID)
    assert value.version == 4
    assert value.variant == uuid.RFC_4122


def test_key_value_boundaries_are_unambiguous():
    assert seeded_uuid({"ab": "c"}) != seeded_uuid({"a": "bc"})


@pytest.mark.parametrize("attrs", [{}, {"a": None}, {"a": 1}, {1: "a"}])
def test_seeded_uuid_rejects_uncanonicalizable_maps(attrs):
    with pytest.raises(SeedingError):
        seeded_uuid(attrs)


def test_observation_attributes_cover_resource_and_policy(record):
    attrs = observation_attributes(record, Policy("data.compliance_plugin.backup", "backup.rego"), "/p")
    assert attrs == {
        "type": "azure-cloud--postgresql",
        "service": "azure-postgres-flexible-server",
        "instance-id": record.instance_id,
        "package": "data.compliance_plugin.backup",
        "policy-file": "backup.rego",
        "_policy": "/p",
    }


def test_shared_finding_identity_reuses_observation_keys():
    assert finding_attributes(ATTRS, FINDING_IDENTITY_SHARED, 3) == ATTRS


def test_per_violation_finding_identity_adds_discriminator():
    first = finding_attributes(ATTRS, FINDING_IDENTITY_PER_VIOLATION, 0)
    second = finding_attributes(ATTRS, FINDING_IDENTITY_PER_VIOLATION, 1)
    assert first["_violation"] == "0"
    assert seeded_uuid(first) != seeded_uuid(second)
    assert seeded_uuid(first) != seeded_uuid(ATTRS)


def test_unknown_finding_identity_mode():
    with pytest.raises(SeedingError):
        finding_attributes(ATTRS, "random", 0)


def test_stream_attributes_only_depend_on_policy():
    assert stream_attributes("/p") == {"type": "azure-cloud--postgresql", "_policy": "/p"}
