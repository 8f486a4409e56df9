import pytest

from chatbridge.services.canonical import Platform
from chatbridge.services.errors import ValidationError
from chatbridge.services.normalizers import normalize_chatwoot, normalize_dify, normalize_telegram


def telegram_update(text="Hello there", chat=None, sender=None, **message_fields):
    return {
        "update_id": 1001,
        "message": {
            "message_id": 77,
            "date": 1702000000,
            "chat": chat or {"id": 42, "type": "private"},
            "from": sender or {"id": 42, "is_bot": False, "first_name": "Ann", "last_name": "Lee", "username": "ann"},
            "text": text,
            **message_fields,
        },
    }


GROUP_CHAT = {"id": -100200, "type": "supergroup", "title": "Customers"}


class TestNormalizeTelegram:
    def test_private_chat_uses_sender_id(self):
        result = normalize_telegram(telegram_update(), bot_id=5, bot_username="support_bot")

        assert result.ok is True
        message = result.value
        assert message.platform == Platform.TELEGRAM
        assert message.instance_id == 5
        assert message.conversation_id == "42"
        assert message.sender_name == "Ann Lee"
        assert message.content == "Hello there"
        assert message.metadata["isGroupChat"] is False
        assert message.metadata["shouldRespondWithAI"] is True
        assert message.metadata["username"] == "ann"

    def test_group_chat_uses_chat_id(self):
        result = normalize_telegram(telegram_update(chat=GROUP_CHAT), bot_id=5, bot_username="support_bot")

        message = result.value
        assert message.conversation_id == "-100200"
        assert message.sender_id == "42"
        assert message.metadata["isGroupChat"] is True
        assert message.metadata["shouldRespondWithAI"] is False

    def test_group_mention_enables_ai(self):
        update = telegram_update(
            text="@support_bot where is my parcel?",
            chat=GROUP_CHAT,
            entities=[{"type": "mention", "offset": 0, "length": 12}],
        )

        message = normalize_telegram(update, bot_id=5, bot_username="support_bot").value

        assert message.metadata["mentionsBot"] is True
        assert message.metadata["shouldRespondWithAI"] is True

    @pytest.mark.parametrize("text", ["thanks @support_bot2", "join @support_bot_fans today", "mail ann@support_bot"])
    def test_longer_handle_is_not_a_mention(self, text):
        message = normalize_telegram(telegram_update(text=text, chat=GROUP_CHAT), bot_id=5, bot_username="support_bot").value

        assert message.metadata["mentionsBot"] is False
        assert message.metadata["shouldRespondWithAI"] is False

    def test_plain_text_handle_is_a_mention(self):
        update = telegram_update(text="hey @Support_Bot, any news?", chat=GROUP_CHAT)

        message = normalize_telegram(update, bot_id=5, bot_username="support_bot").value

        assert message.metadata["mentionsBot"] is True

    def test_reply_to_bot_counts_as_mention(self):
        update = telegram_update(
            text="and tomorrow?",
            chat=GROUP_CHAT,
            reply_to_message={"message_id": 70, "from": {"id": 9, "is_bot": True, "username": "support_bot"}},
        )

        message = normalize_telegram(update, bot_id=5, bot_username="support_bot").value

        assert message.metadata["shouldRespondWithAI"] is True

    def test_sender_name_falls_back_to_username(self):
        update = telegram_update(sender={"id": 8, "first_name": "", "username": "nick"})

        assert normalize_telegram(update, bot_id=5).value.sender_name == "@nick"

    def test_sender_name_falls_back_to_user_id(self):
        update = telegram_update(sender={"id": 8})

        assert normalize_telegram(update, bot_id=5).value.sender_name == "User 8"

    def test_bot_author_is_flagged(self):
        update = telegram_update(sender={"id": 9, "is_bot": True, "first_name": "Other bot"})

        assert normalize_telegram(update, bot_id=5).value.metadata["isBot"] is True

    def test_service_event_is_noop(self):
        update = telegram_update(text=None, new_chat_members=[{"id": 3, "first_name": "New"}])

        result = normalize_telegram(update, bot_id=5)

        assert result.ok is False
        assert result.error_code == "service_event"

    def test_non_text_message_is_noop(self):
        update = telegram_update(text=None, caption="photo caption")

        assert normalize_telegram(update, bot_id=5).error_code == "unsupported_content"

    def test_update_without_message_is_noop(self):
        result = normalize_telegram({"update_id": 3, "callback_query": {"id": "q"}}, bot_id=5)

        assert result.ok is False
        assert result.error_code == "no_message"

    def test_missing_chat_raises(self):
        update = {"update_id": 1, "message": {"message_id": 1, "date": 1, "text": "hi"}}

        with pytest.raises(ValidationError):
            normalize_telegram(update, bot_id=5)

    def test_non_object_payload_raises(self):
        with pytest.raises(ValidationError):
            normalize_telegram(["not", "an", "object"], bot_id=5)


def chatwoot_event(**overrides):
    event = {
        "event": "message_created",
        "id": 900,
        "content": "We shipped it yesterday",
        "message_type": "outgoing",
        "private": False,
        "content_attributes": {},
        "sender": {"id": 3, "name": "Agent Smith", "type": "user"},
        "conversation": {
            "id": 501,
            "inbox_id": 12,
            "additional_attributes": {"chat_id": "42", "telegram_bot_id": 5},
        },
        "account": {"id": 7},
    }
    event.update(overrides)
    return event


class TestNormalizeChatwoot:
    def test_agent_message(self):
        result = normalize_chatwoot(chatwoot_event(), account_id=2)

        message = result.value
        assert message.platform == Platform.CHATWOOT
        assert message.instance_id == 2
        assert message.conversation_id == "501"
        assert message.sender_name == "Agent Smith"
        assert message.metadata["chatId"] == "42"
        assert message.metadata["telegramBotId"] == 5
        assert message.metadata["forwarded"] is False

    def test_contact_updated_is_noop(self):
        result = normalize_chatwoot({"event": "contact_updated", "id": 4, "name": "Ann"}, account_id=2)

        assert result.ok is False
        assert result.error_code == "informational_event"

    def test_unknown_event_is_noop(self):
        assert normalize_chatwoot({"event": "webwidget_triggered"}, account_id=2).error_code == "unsupported_event"

    def test_conversation_updated_uses_last_message(self):
        payload = {
            "event": "conversation_updated",
            "id": 501,
            "additional_attributes": {"chat_id": "42"},
            "messages": [
                {"id": 1, "content": "first", "message_type": 1, "conversation_id": 501},
                {"id": 2, "content": "latest", "message_type": 1, "conversation_id": 501, "sender": {"name": "Bo"}},
            ],
        }

        message = normalize_chatwoot(payload, account_id=2).value

        assert message.content == "latest"
        assert message.message_id == "2"
        assert message.conversation_id == "501"
        assert message.metadata["chatId"] == "42"

    def test_conversation_updated_without_messages_is_noop(self):
        result = normalize_chatwoot({"event": "conversation_updated", "id": 501, "messages": []}, account_id=2)

        assert result.error_code == "empty_conversation"

    def test_private_note_is_noop(self):
        assert normalize_chatwoot(chatwoot_event(private=True), account_id=2).error_code == "private_note"

    def test_incoming_message_is_noop(self):
        assert normalize_chatwoot(chatwoot_event(message_type="incoming"), account_id=2).error_code == "not_outgoing"

    def test_forwarded_flag_is_carried(self):
        event = chatwoot_event(content_attributes={"forwarded": True})

        assert normalize_chatwoot(event, account_id=2).value.metadata["forwarded"] is True

    def test_agent_bot_sender_is_flagged(self):
        event = chatwoot_event(sender={"id": 1, "name": "Bot", "type": "agent_bot"})

        assert normalize_chatwoot(event, account_id=2).value.metadata["isBot"] is True

    def test_empty_content_is_noop(self):
        assert normalize_chatwoot(chatwoot_event(content="  "), account_id=2).error_code == "empty_content"


class TestNormalizeDify:
    def test_callback(self):
        payload = {"conversation_id": "dc-1", "answer": "Hi", "message_id": "m1", "metadata": {"chat_id": "42"}}

        message = normalize_dify(payload, app_id=3).value

        assert message.platform == Platform.DIFY
        assert message.conversation_id == "dc-1"
        assert message.content == "Hi"
        assert message.chat_id == "42"

    def test_list_answer(self):
        message = normalize_dify({"conversation_id": "dc-1", "answer": ["one", "two"]}, app_id=3).value

        assert message.content == "one"

    def test_missing_answer_is_noop(self):
        assert normalize_dify({"conversation_id": "dc-1"}, app_id=3).error_code == "empty_content"

    def test_missing_conversation_raises(self):
        with pytest.raises(ValidationError):
            normalize_dify({"answer": "Hi"}, app_id=3)
