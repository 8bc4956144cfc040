"""Tests for inbound frame parsing and routing."""
import json

import pytest

from chatcast.chat.dispatcher import MessageRouter, parse_frame
from chatcast.chat.errors import InvalidPayload, MalformedPayload, UnknownMessageType


class TestParseFrame:
    def test_object(self):
        assert parse_frame('{"type": "typing"}') == {"type": "typing"}

    def test_bytes(self):
        assert parse_frame(b'{"type": "typing"}') == {"type": "typing"}

    def test_invalid_json(self):
        with pytest.raises(MalformedPayload) as exc_info:
            parse_frame("not json")
        assert "invalid JSON" in exc_info.value.message

    @pytest.mark.parametrize("raw", ["[1, 2]", '"hello"', "42", "null"])
    def test_non_object(self, raw):
        with pytest.raises(MalformedPayload):
            parse_frame(raw)


class TestResolve:
    def test_known_types(self, chat_manager):
        assert set(MessageRouter(chat_manager).message_types) == {
            "chat_message", "typing", "user_update",
        }

    @pytest.mark.parametrize("raw", [
        '{"type": "bogus"}',
        '{"content": "no type"}',
        '{"type": 7}',
        '{"type": null}',
    ])
    def test_unknown_type(self, chat_manager, raw):
        with pytest.raises(UnknownMessageType):
            MessageRouter(chat_manager).resolve(raw)

    @pytest.mark.parametrize("raw", [
        '{"type": "chat_message"}',
        '{"type": "chat_message", "content": 12}',
        '{"type": "typing", "username": ["x"]}',
    ])
    def test_invalid_fields(self, chat_manager, raw):
        with pytest.raises(InvalidPayload) as exc_info:
            MessageRouter(chat_manager).resolve(raw)
        assert isinstance(exc_info.value, MalformedPayload)
        assert exc_info.value.message.startswith("Invalid ")


class TestDispatchErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "not json",
        '{"type": "bogus"}',
        '{"foo": 1}',
        "[1, 2, 3]",
        '{"type": "chat_message"}',
    ])
    async def test_rejected_frame_gets_one_error_and_nothing_else(self, chat_manager, join, raw):
        sender, sender_ws = await join()
        _, other_ws = await join()
        sender_ws.sent.clear()
        other_ws.sent.clear()

        await MessageRouter(chat_manager).dispatch(sender.participant_id, raw)

        errors = sender_ws.events_of("error")
        assert len(errors) == 1
        assert errors[0]["message"]
        assert len(sender_ws.sent) == 1
        assert other_ws.sent == []
        assert chat_manager.get_message_count() == 0
        assert chat_manager.get_online_count() == 2

    @pytest.mark.asyncio
    async def test_unknown_type_error_names_the_type_and_known_types(self, chat_manager, join):
        sender, sender_ws = await join()

        await MessageRouter(chat_manager).dispatch(sender.participant_id, '{"type": "bogus"}')

        message = sender_ws.events_of("error")[0]["message"]
        assert "bogus" in message
        for message_type in ("chat_message", "typing", "user_update"):
            assert message_type in message

    @pytest.mark.asyncio
    async def test_frame_from_departed_sender_is_dropped(self, chat_manager, join):
        departed, departed_ws = await join()
        _, other_ws = await join()
        await chat_manager.disconnect(departed.participant_id)
        departed_ws.sent.clear()
        other_ws.sent.clear()

        await MessageRouter(chat_manager).dispatch(
            departed.participant_id,
            json.dumps({"type": "chat_message", "content": "ghost"}),
        )

        assert departed_ws.sent == []
        assert other_ws.sent == []
        assert chat_manager.get_message_count() == 0


class TestChatMessage:
    @pytest.mark.asyncio
    async def test_broadcast_to_everyone_including_sender(self, chat_manager, join):
        alice, alice_ws = await join()
        _, bob_ws = await join()
        _, carol_ws = await join()

        await MessageRouter(chat_manager).dispatch(
            alice.participant_id,
            json.dumps({"type": "chat_message", "content": "hi", "username": "alice"}),
        )

        for ws in (alice_ws, bob_ws, carol_ws):
            messages = ws.events_of("chat_message")
            assert len(messages) == 1
            assert messages[0]["content"] == "hi"
            assert messages[0]["username"] == "alice"
            assert messages[0]["userId"] == alice.participant_id
        assert alice_ws.events_of("chat_message") == bob_ws.events_of("chat_message")

        history = chat_manager.get_recent_messages(10)
        assert len(history) == 1
        assert history[0].messageId == alice_ws.events_of("chat_message")[0]["messageId"]

    @pytest.mark.asyncio
    async def test_server_assigns_id_and_timestamp(self, chat_manager, join):
        alice, alice_ws = await join()

        await MessageRouter(chat_manager).dispatch(alice.participant_id, json.dumps({
            "type": "chat_message",
            "content": "hello",
            "messageId": "client-chosen",
            "timestamp": "1999-01-01T00:00:00Z",
        }))

        event = alice_ws.events_of("chat_message")[0]
        assert event["messageId"] != "client-chosen"
        assert event["timestamp"] != "1999-01-01T00:00:00Z"
        assert event["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_default_username(self, chat_manager, join):
        alice, alice_ws = await join()

        await MessageRouter(chat_manager).dispatch(
            alice.participant_id, '{"type": "chat_message", "content": "hey"}'
        )

        assert alice_ws.events_of("chat_message")[0]["username"] == (
            f"User {alice.participant_id[:6]}"
        )

    @pytest.mark.asyncio
    async def test_content_stored_verbatim(self, chat_manager, join):
        alice, _ = await join()
        content = "  <b>spaces & markup</b>  "

        await MessageRouter(chat_manager).dispatch(
            alice.participant_id, json.dumps({"type": "chat_message", "content": content})
        )

        assert chat_manager.get_recent_messages(1)[0].content == content

    @pytest.mark.asyncio
    async def test_binary_frame(self, chat_manager, join):
        alice, alice_ws = await join()

        await MessageRouter(chat_manager).dispatch(
            alice.participant_id, b'{"type": "chat_message", "content": "bytes"}'
        )

        assert alice_ws.events_of("chat_message")[0]["content"] == "bytes"

    @pytest.mark.asyncio
    async def test_messages_arrive_in_send_order(self, chat_manager, join):
        alice, _ = await join()
        _, bob_ws = await join()
        dispatcher = MessageRouter(chat_manager)

        for n in range(5):
            await dispatcher.dispatch(
                alice.participant_id,
                json.dumps({"type": "chat_message", "content": f"m{n}"}),
            )

        assert [e["content"] for e in bob_ws.events_of("chat_message")] == [
            f"m{n}" for n in range(5)
        ]


class TestTyping:
    @pytest.mark.asyncio
    async def test_not_delivered_to_sender(self, chat_manager, join):
        alice, alice_ws = await join()
        _, bob_ws = await join()
        alice_ws.sent.clear()

        await MessageRouter(chat_manager).dispatch(
            alice.participant_id, '{"type": "typing", "username": "alice"}'
        )

        assert alice_ws.sent == []
        assert bob_ws.events_of("typing") == [{
            "type": "typing",
            "userId": alice.participant_id,
            "username": "alice",
            "timestamp": bob_ws.events_of("typing")[0]["timestamp"],
        }]

    @pytest.mark.asyncio
    async def test_not_stored(self, chat_manager, join):
        alice, _ = await join()

        await MessageRouter(chat_manager).dispatch(alice.participant_id, '{"type": "typing"}')

        assert chat_manager.get_message_count() == 0


class TestUserUpdate:
    @pytest.mark.asyncio
    async def test_broadcast_to_everyone(self, chat_manager, join):
        alice, alice_ws = await join()
        _, bob_ws = await join()

        await MessageRouter(chat_manager).dispatch(
            alice.participant_id, '{"type": "user_update", "username": "Alicia"}'
        )

        for ws in (alice_ws, bob_ws):
            updates = ws.events_of("user_update")
            assert len(updates) == 1
            assert updates[0]["userId"] == alice.participant_id
            assert updates[0]["username"] == "Alicia"

    @pytest.mark.asyncio
    async def test_rename_does_not_rewrite_history(self, chat_manager, join):
        alice, _ = await join()
        dispatcher = MessageRouter(chat_manager)

        await dispatcher.dispatch(
            alice.participant_id,
            '{"type": "chat_message", "content": "before", "username": "alice"}',
        )
        await dispatcher.dispatch(
            alice.participant_id, '{"type": "user_update", "username": "Alicia"}'
        )

        assert chat_manager.get_recent_messages(1)[0].username == "alice"
        assert chat_manager.get_message_count() == 1
