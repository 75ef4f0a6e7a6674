from __future__ import annotations
from dataclasses import replace
from typing import Optional

from ..azure.normalizer import ResourceRecord
from ..utils.catalog import load_catalog
from .base import (
    SUBJECT_COMPONENT, SUBJECT_INVENTORY_ITEM,
    Activity, Component, InventoryItem, Link, OriginActor, Property, ProvenanceBundle, Step, Subject,
)

COMPONENT_ID = "common-components/az-postgres-database"

COLLECTION_ACTIVITY = ("Collect Azure Postgres Flexible Servers",
                       "Collect Azure Postgres Flexible Server configurations using the Azure SDK for Python.")
EVALUATION_ACTIVITY = ("Evaluate policy bundle",
                       "Evaluate the collected server configuration against a policy bundle.")

COLLECTION_STEPS = (
    Step("Fetch credentials",
         "Obtain Azure credentials for the configured subscription.",
         "Produced by azure.identity (DefaultAzureCredential or ClientSecretCredential)."),
    Step("Construct client",
         "Construct the PostgreSQL flexible servers management client.",
         "Produced by azure.mgmt.rdbms.postgresql_flexibleservers.PostgreSQLManagementClient."),
    Step("Construct paginator",
         "List all Azure Flexible PostgreSQL Servers in the specified subscription.",
         "Produced by PostgreSQLManagementClient.servers.list().by_page()."),
)


class ProvenanceBuilder:
    """Builds the audit trail attached to every observation and finding.

    Actors and components are fixed for the run. The collection steps are
    built once; each record and policy gets its own copy with extra steps.
    """

    def __init__(self, catalog: Optional[dict] = None):
        catalog = catalog if catalog is not None else load_catalog()
        self.actors = tuple(
            OriginActor(
                title=a["title"],
                type=a["type"],
                links=tuple(Link(href=l["href"], text=l.get("text", ""), rel=l.get("rel", "")) for l in a.get("links", [])),
            )
            for a in catalog.get("actors", [])
        )
        self.components = tuple(
            Component(
                identifier=c["identifier"],
                title=c["title"],
                description=c.get("description", ""),
                purpose=c.get("purpose", ""),
            )
            for c in catalog.get("components", [])
        )
        self.collection_steps = COLLECTION_STEPS

    def for_record(self, record: ResourceRecord) -> ProvenanceBundle:
        inventory_id = f"azure-postgres-database/{record.instance_id}"
        retrieve = Step(
            "Retrieve instance from page",
            f"Retrieve server {record.name} from the listing page.",
            "Produced by iterating the page returned by the servers paginator.",
        )
        collection = Activity(*COLLECTION_ACTIVITY, steps=self.collection_steps + (retrieve,))
        return ProvenanceBundle(
            actors=self.actors,
            components=self.components,
            subjects=(
                Subject(SUBJECT_COMPONENT, COMPONENT_ID, title="Azure PostgreSQL Database"),
                Subject(
                    SUBJECT_INVENTORY_ITEM,
                    inventory_id,
                    title=f"Azure PostgreSQL Flexible Server {record.name}",
                    remarks=f"{record.type} in {record.location}, resource group {record.resource_group}",
                ),
            ),
            inventory=(
                InventoryItem(
                    identifier=inventory_id,
                    type="database",
                    title=record.name,
                    props=(Property("instance-id", record.instance_id), Property("instance-name", record.name)),
                ),
            ),
            activities=(collection,),
        )

    def for_policy(self, bundle: ProvenanceBundle, policy_path: str) -> ProvenanceBundle:
        evaluation = Activity(
            *EVALUATION_ACTIVITY,
            steps=(
                Step("Compile policy bundle", f"Compile the policy bundle at {policy_path}.",
                     "Produced by the policy engine's bundle inspection."),
                Step("Execute policy bundle", f"Execute the policy bundle at {policy_path} against the server record.",
                     "Produced by the policy engine's evaluation of data.compliance_plugin."),
            ),
        )
        return replace(bundle, activities=bundle.activities + (evaluation,))
