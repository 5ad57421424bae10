"""Unit tests for mango_sdk.exceptions: SDK exception hierarchy."""

from mango_sdk.exceptions import (
    CommandError,
    ConcurrentRequestError,
    ConnectionClosedError,
    MalformedDocumentError,
    MangoError,
    ProtocolError,
    TimeoutError,
    TransportError,
    UnexpectedReplyError,
)
from mango_sdk.types import Document


class TestMangoError:
    def test_init_message_only(self) -> None:
        err = MangoError("something broke")
        assert err.message == "something broke"
        assert err.code is None
        assert str(err) == "something broke"

    def test_init_with_code(self) -> None:
        err = MangoError("server error", code=500)
        assert err.message == "server error"
        assert err.code == 500

    def test_is_exception(self) -> None:
        err = MangoError("test")
        assert isinstance(err, Exception)


class TestTransportErrors:
    def test_transport_error(self) -> None:
        assert isinstance(TransportError("refused"), MangoError)

    def test_connection_closed_is_transport(self) -> None:
        err = ConnectionClosedError("eof")
        assert isinstance(err, TransportError)
        assert isinstance(err, MangoError)

    def test_timeout_is_transport(self) -> None:
        err = TimeoutError("timed out")
        assert isinstance(err, TransportError)

    def test_timeout_is_not_builtin(self) -> None:
        import builtins

        assert not isinstance(TimeoutError("x"), builtins.TimeoutError)


class TestProtocolErrors:
    def test_protocol_error(self) -> None:
        assert isinstance(ProtocolError("bad op code"), MangoError)

    def test_unexpected_reply(self) -> None:
        err = UnexpectedReplyError("stray reply", response_to=12)
        assert err.response_to == 12
        assert err.message == "stray reply"
        assert isinstance(err, ProtocolError)

    def test_malformed_document(self) -> None:
        err = MalformedDocumentError("bad tag", offset=7)
        assert err.offset == 7
        assert err.code is None
        assert not isinstance(err, ProtocolError)

    def test_concurrent_request(self) -> None:
        assert isinstance(ConcurrentRequestError("busy"), MangoError)


class TestCommandError:
    def test_init_minimal(self) -> None:
        err = CommandError("failed")
        assert err.message == "failed"
        assert err.code is None
        assert err.code_name is None
        assert err.reply is None

    def test_from_reply(self) -> None:
        reply = Document([("ok", 0.0), ("errmsg", "no such command: 'bogus'"), ("code", 59), ("codeName", "CommandNotFound")])
        err = CommandError.from_reply(reply)
        assert err.message == "no such command: 'bogus'"
        assert err.code == 59
        assert err.code_name == "CommandNotFound"
        assert err.reply is reply

    def test_from_reply_without_details(self) -> None:
        err = CommandError.from_reply(Document([("ok", 0)]))
        assert err.message == "Unknown error"
        assert err.code is None

    def test_from_reply_double_code(self) -> None:
        err = CommandError.from_reply({"ok": 0, "code": 13.0})
        assert err.code == 13
        assert isinstance(err.code, int)
