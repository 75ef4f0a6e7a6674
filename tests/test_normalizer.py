from datetime import datetime, timezone
from enum import Enum

import pytest
from azure.mgmt.rdbms.postgresql_flexibleservers.models import Backup, Server

from conftest import SERVER_TYPE, fake_server, server_id
from psql_evidence.azure.normalizer import NESTED_PROPERTIES, SCALAR_PROPERTIES, Tag, normalize_server, to_primitive
from psql_evidence.errors import MissingFieldError, NormalizationError


def sdk_server(name="db-sdk"):
    server = Server(location="uksouth", tags={"env": "prod"}, version="14", backup=Backup(backup_retention_days=7))
    # read-only fields are populated by the service, never by the constructor
    server.id = server_id(name)
    server.name = name
    server.type = SERVER_TYPE
    return server


def test_sdk_server_round_trip():
    record = normalize_server(sdk_server())

    assert record.tags == (Tag(key="env", value="prod"),)
    assert record.properties["backup"]["backupRetentionDays"] == 7
    assert record.properties["version"] == "14"
    assert isinstance(record.properties["backup"], dict)


def test_properties_map_has_every_flattened_key():
    record = normalize_server(fake_server("db-one"))
    assert set(record.properties) == set(SCALAR_PROPERTIES) | set(NESTED_PROPERTIES)
    assert record.properties["network"] is None


def test_tags_are_sorted_and_defensive():
    record = normalize_server(fake_server("db-one", tags={"team": "data", "env": None}))
    assert record.tags == (Tag("env", ""), Tag("team", "data"))

    assert normalize_server(fake_server("db-two", tags=None)).tags == ()


def test_record_identity_fields_and_labels():
    record = normalize_server(fake_server("db-one"))

    assert record.instance_id == server_id("db-one")
    assert record.resource_group == "rg-data"
    assert record.subscription_id == "sub-1"
    assert record.labels == {
        "provider": "azure",
        "type": "database",
        "instance-id": server_id("db-one"),
        "resource-group": "rg-data",
        "location": "uksouth",
        "name": "db-one",
        "subscription_id": "sub-1",
    }


def test_policy_input_shape():
    doc = normalize_server(fake_server("db-one")).to_policy_input()
    assert doc["InstanceID"] == server_id("db-one")
    assert doc["Tags"] == [{"Key": "env", "Value": "prod"}]
    assert doc["Properties"]["backup"] == {"backupRetentionDays": 7}
    assert set(doc) == {"InstanceID", "Location", "Name", "Properties", "Tags", "Type"}


@pytest.mark.parametrize("field", ["id", "location", "name", "type"])
def test_missing_mandatory_field(field):
    with pytest.raises(MissingFieldError) as info:
        normalize_server(fake_server("db-one", **{field: None}))
    assert info.value.field == field
    assert info.value.kind == "normalization"


def test_unparseable_resource_id():
    with pytest.raises(NormalizationError):
        normalize_server(fake_server("db-one", id="/subscriptions/sub-1/resourceGroups"))


def test_unsupported_property_type():
    with pytest.raises(NormalizationError):
        normalize_server(fake_server("db-one", storage=object()))


class _State(str, Enum):
    READY = "Ready"


def test_to_primitive_flattens_enums_and_datetimes():
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    value = to_primitive({"state": _State.READY, "restore": [when], "n": 3})
    assert value == {"state": "Ready", "restore": ["2024-05-01T12:00:00+00:00"], "n": 3}
