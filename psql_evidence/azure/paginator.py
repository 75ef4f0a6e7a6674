from __future__ import annotations
import logging
import threading
from typing import Any, Iterator, Optional, Tuple

from azure.core.exceptions import AzureError, ClientAuthenticationError

from ..errors import CredentialError, EvidenceError, NoInstancesFoundError, PaginationError, RunCancelledError

LOGGER = logging.getLogger(__name__)


class ServerPaginator:
    """Lazy, forward-only listing of PostgreSQL flexible servers.

    Iterating yields ``(server, None)`` per server. A failure is yielded once as
    ``(None, error)`` and ends the sequence; callers must stop there rather than
    treat it as a per-item problem. Every ``iter()`` starts a fresh listing.
    """

    def __init__(self, client, cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.cancel_event = cancel_event

    def __iter__(self) -> Iterator[Tuple[Optional[Any], Optional[EvidenceError]]]:
        try:
            pages = self.client.servers.list().by_page()
        except AzureError as e:
            yield None, _listing_error(e, page=1)
            return

        page_number = 0
        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                yield None, RunCancelledError({"page": str(page_number + 1)})
                return
            page_number += 1
            try:
                # the SDK only fetches when the page is consumed
                servers = list(next(pages))
            except StopIteration:
                return
            except AzureError as e:
                yield None, _listing_error(e, page=page_number)
                return

            if not servers:
                LOGGER.debug("page %d came back empty", page_number)
                yield None, NoInstancesFoundError({"page": str(page_number)})
                return

            LOGGER.debug("retrieved %d server(s) from page %d", len(servers), page_number)
            for server in servers:
                yield server, None


def _listing_error(e: AzureError, page: int) -> EvidenceError:
    context = {"page": str(page)}
    if isinstance(e, ClientAuthenticationError):
        LOGGER.debug("authentication failed while listing servers: %s", e)
        return CredentialError(f"unable to authenticate against Azure: {e}", context)
    LOGGER.debug("listing failed on page %d: %s", page, e)
    return PaginationError(f"unable to list Azure PostgreSQL servers (page {page}): {e}", context)
