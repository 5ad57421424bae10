"""
Request/response correlation for a single connection.

Request ids increase strictly from 1 and wrap from ``2**31 - 1`` back to 1,
never producing 0. Only one request may be outstanding at a time.
"""

import asyncio
import logging

from ..exceptions import ConcurrentRequestError, UnexpectedReplyError
from ..types import Document
from .constants import INT32_MAX

logger = logging.getLogger(__name__)


class RequestCorrelator:
    """
    Allocates request ids and matches replies to the pending request.

    Each connection owns its own correlator; nothing is shared between them.
    """

    def __init__(self, start: int = 0):
        self._request_id = start
        self._pending: dict[int, asyncio.Future[Document]] = {}

    def next_request_id(self) -> int:
        """Generate the next request id."""
        self._request_id = self._request_id + 1 if self._request_id < INT32_MAX else 1
        return self._request_id

    @property
    def has_pending(self) -> bool:
        """Check if a request is waiting for its reply."""
        return bool(self._pending)

    @property
    def outstanding(self) -> list[int]:
        """Ids of requests waiting for a reply."""
        return list(self._pending)

    def register_pending(self, request_id: int) -> asyncio.Future[Document]:
        """
        Register *request_id* as in flight and return its completion future.

        Raises:
            ConcurrentRequestError: If another request is still outstanding
        """
        if self._pending:
            raise ConcurrentRequestError(
                f"Request {self.outstanding[0]} is still in flight; this connection does not pipeline requests"
            )
        future: asyncio.Future[Document] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    def resolve(self, response_to: int, document: Document) -> None:
        """
        Complete the pending request that *response_to* answers.

        Raises:
            UnexpectedReplyError: If no outstanding request has that id
        """
        future = self._pending.pop(response_to, None)
        if future is None:
            raise UnexpectedReplyError(
                f"Reply responseTo={response_to} does not match any outstanding request {self.outstanding}",
                response_to=response_to,
            )
        if not future.done():
            future.set_result(document)

    def discard(self, request_id: int) -> None:
        """Forget a pending request without completing it."""
        future = self._pending.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()

    def fail_all(self, exc: BaseException) -> None:
        """Fail every pending request with *exc*."""
        for request_id, future in self._pending.items():
            if not future.done():
                logger.debug("Failing pending request %d: %s", request_id, exc)
                future.set_exception(exc)
        self._pending.clear()


__all__ = ["RequestCorrelator"]
