from types import SimpleNamespace

import pytest

from psql_evidence.errors import PersistenceError, PolicyEvaluationError
from psql_evidence.policy.base import Policy, PolicyEvaluator, PolicyResult, Violation

SERVER_TYPE = "Microsoft.DBforPostgreSQL/flexibleServers"


def server_id(name, subscription="sub-1", resource_group="rg-data"):
    return (f"/subscriptions/{subscription}/resourceGroups/{resource_group}"
            f"/providers/Microsoft.DBforPostgreSQL/flexibleServers/{name}")


def fake_server(server_name, **overrides):
    fields = dict(
        id=server_id(server_name),
        location="UK South",
        name=server_name,
        type=SERVER_TYPE,
        tags={"env": "prod"},
        version="16",
        state="Ready",
        backup={"backupRetentionDays": 7},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class FakeItemPaged:
    """Mimics azure.core.paging.ItemPaged; an Exception in ``pages`` is raised when that page is fetched."""

    def __init__(self, pages):
        self.pages = pages
        self.fetched = 0

    def by_page(self):
        for page in self.pages:
            self.fetched += 1
            if isinstance(page, Exception):
                raise page
            yield iter(page)


class FakeClient:
    def __init__(self, pages):
        self.list_calls = 0
        self._pages = pages
        self.servers = SimpleNamespace(list=self._list)

    def _list(self):
        self.list_calls += 1
        return FakeItemPaged(self._pages)


class FakeEvaluator(PolicyEvaluator):
    """Returns canned results keyed by (policy_path, server name); a missing key means no violations."""

    def __init__(self, results=None, fail_on=()):
        self.results = results or {}
        self.fail_on = set(fail_on)
        self.calls = []

    def evaluate(self, policy_path, record):
        self.calls.append((policy_path, record.name))
        if (policy_path, record.name) in self.fail_on:
            raise PolicyEvaluationError("rego compile error")
        if (policy_path, record.name) in self.results:
            return self.results[(policy_path, record.name)]
        return [PolicyResult(policy=Policy(package="data.compliance_plugin.backup", file="backup.rego"))]


class RecordingSink:
    def __init__(self, fail_observations_for=()):
        self.observations = []
        self.findings = []
        self.results = []
        self.fail_observations_for = set(fail_observations_for)

    def create_observations(self, observations):
        for o in observations:
            if o.labels.get("name") in self.fail_observations_for:
                raise PersistenceError("api returned 500")
        self.observations.extend(observations)

    def create_findings(self, findings):
        self.findings.extend(findings)

    def create_result(self, result):
        self.results.append(result)


def violations(*titles):
    return [Violation(title=t, description=f"{t} description", remarks=f"{t} remarks") for t in titles]


@pytest.fixture
def record():
    from psql_evidence.azure.normalizer import normalize_server
    return normalize_server(fake_server("db-one"))
