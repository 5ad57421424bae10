"""Tests for request id allocation and reply matching."""

import asyncio

import pytest

from mango_sdk.exceptions import ConcurrentRequestError, ConnectionClosedError, ProtocolError, UnexpectedReplyError
from mango_sdk.protocol.correlator import RequestCorrelator
from mango_sdk.types import Document


class TestRequestIds:
    """Tests for next_request_id()."""

    def test_starts_at_one(self) -> None:
        """The first id is 1."""
        assert RequestCorrelator().next_request_id() == 1

    def test_strictly_increasing(self) -> None:
        """Ids increase by one per request."""
        correlator = RequestCorrelator()
        ids = [correlator.next_request_id() for _ in range(100)]
        assert ids == list(range(1, 101))

    def test_wraps_to_one(self) -> None:
        """After 2**31 - 1 the next id is 1, never 0."""
        correlator = RequestCorrelator(start=2**31 - 2)
        assert correlator.next_request_id() == 2**31 - 1
        assert correlator.next_request_id() == 1
        assert correlator.next_request_id() == 2

    def test_correlators_are_independent(self) -> None:
        """Each correlator keeps its own counter."""
        first, second = RequestCorrelator(), RequestCorrelator()
        first.next_request_id()
        first.next_request_id()
        assert second.next_request_id() == 1


class TestPending:
    """Tests for register_pending(), resolve() and friends."""

    async def test_resolve_completes_future(self) -> None:
        """A matching reply completes the pending future."""
        correlator = RequestCorrelator()
        request_id = correlator.next_request_id()
        future = correlator.register_pending(request_id)
        assert correlator.has_pending
        assert correlator.outstanding == [request_id]

        reply = Document([("ok", 1.0)])
        correlator.resolve(request_id, reply)
        assert await future == reply
        assert not correlator.has_pending

    async def test_second_request_rejected(self) -> None:
        """Only one request may be in flight."""
        correlator = RequestCorrelator()
        correlator.register_pending(correlator.next_request_id())
        with pytest.raises(ConcurrentRequestError):
            correlator.register_pending(correlator.next_request_id())

    async def test_unmatched_reply(self) -> None:
        """A reply to an unknown id raises UnexpectedReplyError."""
        correlator = RequestCorrelator()
        correlator.register_pending(5)
        with pytest.raises(UnexpectedReplyError) as exc_info:
            correlator.resolve(6, Document())
        assert exc_info.value.response_to == 6
        assert isinstance(exc_info.value, ProtocolError)
        assert correlator.outstanding == [5]

    async def test_reply_with_nothing_pending(self) -> None:
        """A reply when nothing is pending is unexpected too."""
        with pytest.raises(UnexpectedReplyError):
            RequestCorrelator().resolve(1, Document())

    async def test_discard_cancels(self) -> None:
        """discard() forgets the request and cancels its future."""
        correlator = RequestCorrelator()
        future = correlator.register_pending(1)
        correlator.discard(1)
        assert future.cancelled()
        assert not correlator.has_pending
        correlator.discard(1)  # unknown ids are ignored

    async def test_register_after_discard(self) -> None:
        """A new request may be registered once the last one is gone."""
        correlator = RequestCorrelator()
        correlator.register_pending(1)
        correlator.discard(1)
        future = correlator.register_pending(2)
        assert isinstance(future, asyncio.Future)

    async def test_fail_all(self) -> None:
        """fail_all() sets the error on every pending future."""
        correlator = RequestCorrelator()
        future = correlator.register_pending(1)
        correlator.fail_all(ConnectionClosedError("closed"))
        assert not correlator.has_pending
        with pytest.raises(ConnectionClosedError):
            await future
