import threading

from azure.core.exceptions import ClientAuthenticationError, HttpResponseError

from conftest import FakeClient, fake_server
from psql_evidence.azure.paginator import ServerPaginator
from psql_evidence.errors import CredentialError, NoInstancesFoundError, PaginationError, RunCancelledError


def test_yields_servers_across_pages():
    client = FakeClient([[fake_server("a"), fake_server("b")], [fake_server("c")]])
    items = list(ServerPaginator(client))
    assert [s.name for s, _ in items] == ["a", "b", "c"]
    assert all(err is None for _, err in items)


def test_page_error_is_yielded_once_and_ends_the_sequence():
    client = FakeClient([[fake_server("a")], HttpResponseError(message="throttled"), [fake_server("c")]])
    items = list(ServerPaginator(client))

    assert items[0][0].name == "a"
    server, err = items[-1]
    assert server is None
    assert isinstance(err, PaginationError)
    assert err.context["page"] == "2"
    assert len(items) == 2


def test_authentication_failure_is_a_credential_error():
    items = list(ServerPaginator(FakeClient([ClientAuthenticationError(message="denied")])))
    assert len(items) == 1
    assert isinstance(items[0][1], CredentialError)


def test_empty_page_reports_no_instances():
    items = list(ServerPaginator(FakeClient([[]])))
    assert len(items) == 1
    assert isinstance(items[0][1], NoInstancesFoundError)
    assert str(items[0][1]) == "no instances found"


def test_each_iteration_starts_a_fresh_listing():
    client = FakeClient([[fake_server("a")]])
    paginator = ServerPaginator(client)
    assert len(list(paginator)) == 1
    assert len(list(paginator)) == 1
    assert client.list_calls == 2


def test_cancellation_stops_before_the_next_page():
    cancel = threading.Event()
    client = FakeClient([[fake_server("a")], [fake_server("b")]])
    seen = []
    for server, err in ServerPaginator(client, cancel_event=cancel):
        seen.append((server, err))
        cancel.set()
    assert seen[0][0].name == "a"
    assert isinstance(seen[-1][1], RunCancelledError)
    assert len(seen) == 2
