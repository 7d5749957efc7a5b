"""
Tests for Webhook Handlers

Tests Chatwoot payload parsing and signature verification.
"""

import hashlib
import hmac
import pytest


BODY = b'{"event": "message_created", "content": "Hi"}'
SECRET = "whsec_123"


def _sign(body=BODY, secret=SECRET):
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestVerifySignature:
    """Tests for ChatwootHandler.verify_signature"""

    def test_valid(self):
        from relay.gateway.handlers import ChatwootHandler

        assert ChatwootHandler().verify_signature(BODY, _sign(), SECRET)

    def test_valid_with_prefix(self):
        from relay.gateway.handlers import ChatwootHandler

        assert ChatwootHandler().verify_signature(BODY, "sha256=" + _sign(), SECRET)

    def test_uppercase_hex(self):
        from relay.gateway.handlers import ChatwootHandler

        assert ChatwootHandler().verify_signature(BODY, _sign().upper(), SECRET)

    def test_wrong_secret(self):
        from relay.gateway.handlers import ChatwootHandler

        assert not ChatwootHandler().verify_signature(BODY, _sign(secret="other"), SECRET)

    def test_tampered_body(self):
        from relay.gateway.handlers import ChatwootHandler

        assert not ChatwootHandler().verify_signature(BODY + b" ", _sign(), SECRET)

    def test_non_ascii_signature(self):
        from relay.gateway.handlers import ChatwootHandler

        assert not ChatwootHandler().verify_signature(b"{}", "sha256=éé", "secret")

    @pytest.mark.parametrize("signature,secret", [(None, SECRET), ("", SECRET), ("abc", None)])
    def test_missing_values(self, signature, secret):
        from relay.gateway.handlers import ChatwootHandler

        assert not ChatwootHandler().verify_signature(BODY, signature, secret)


class TestParseEvent:
    """Tests for webhook payload parsing"""

    @pytest.mark.asyncio
    async def test_message_created(self):
        from relay.gateway.handlers import ChatwootHandler

        payload = {
            "event": "message_created",
            "id": 991,
            "content": "  Where is my order?  ",
            "message_type": "incoming",
            "created_at": "2024-05-01T10:00:00Z",
            "conversation": {"id": 42},
            "account": {"id": 7},
            "sender": {"name": "Dana"},
        }

        context = await ChatwootHandler().parse_event(payload, "inbox-1")

        assert context.text == "Where is my order?"
        assert context.inbox_id == "inbox-1"
        assert context.is_message_event
        assert context.message_type == "incoming"
        assert context.conversation_id == "42"
        assert context.account_id == "7"
        assert context.message_id == "991"
        assert context.sender == "Dana"
        assert context.timestamp.year == 2024

    @pytest.mark.asyncio
    async def test_numeric_message_type(self):
        from relay.gateway.handlers import ChatwootHandler

        context = await ChatwootHandler().parse_event(
            {"event": "message_created", "content": "Thanks!", "message_type": 1}, "inbox-1",
        )

        assert context.message_type == "outgoing"

    @pytest.mark.asyncio
    async def test_account_from_conversation(self):
        from relay.gateway.handlers import ChatwootHandler

        context = await ChatwootHandler().parse_event(
            {"event": "message_created", "content": "hi", "conversation": {"id": 5, "account_id": 3}},
            "inbox-1",
        )

        assert context.account_id == "3"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("created_at", [10 ** 20, -(10 ** 20), float("nan")])
    async def test_out_of_range_timestamp(self, created_at):
        from relay.gateway.handlers import ChatwootHandler

        context = await ChatwootHandler().parse_event(
            {"event": "message_created", "content": "hi", "created_at": created_at}, "inbox-1",
        )

        assert context.timestamp.tzinfo is not None
        assert context.text == "hi"

    @pytest.mark.asyncio
    async def test_other_event(self):
        from relay.gateway.handlers import ChatwootHandler

        context = await ChatwootHandler().parse_event({"event": "conversation_created"}, "inbox-1")

        assert not context.is_message_event
        assert context.text == ""
        assert context.conversation_id is None

    @pytest.mark.asyncio
    async def test_non_object_payload(self):
        from relay.common.errors import MalformedInputError
        from relay.gateway.handlers import ChatwootHandler

        with pytest.raises(MalformedInputError):
            await ChatwootHandler().parse_event(["not", "an", "object"], "inbox-1")

    def test_context_is_frozen(self):
        from dataclasses import FrozenInstanceError
        from relay.pipeline import ProcessingContext

        context = ProcessingContext(text="hi", inbox_id="inbox-1")

        with pytest.raises(FrozenInstanceError):
            context.text = "changed"
