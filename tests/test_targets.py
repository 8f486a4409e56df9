from unittest.mock import Mock

import pytest

from chatbridge.services import conversation_link_repository as links
from chatbridge.services.cache import TTLCache
from chatbridge.services.canonical import CanonicalMessage, Platform
from chatbridge.services.clients.dify_client import DifyReply
from chatbridge.services.errors import NotConfiguredError, NotFoundError
from chatbridge.services.instance_directory import PlatformInstance
from chatbridge.services.targets import ChatwootTarget, DifyTarget, TargetRegistry, TelegramTarget, build_source_id


def telegram_message(bot_id, content="Where is my order?", chat_id="42", chat_type="private"):
    return CanonicalMessage(
        platform=Platform.TELEGRAM,
        instance_id=bot_id,
        conversation_id=chat_id,
        sender_id="42",
        sender_name="Ann Lee",
        content=content,
        message_id="1",
        metadata={
            "isGroupChat": chat_type != "private",
            "chatType": chat_type,
            "chatId": chat_id,
            "username": "ann",
            "shouldRespondWithAI": True,
        },
    )


@pytest.fixture
def bot(make_bot):
    return make_bot()


@pytest.fixture
def account_instance(make_account):
    account = make_account()
    return PlatformInstance(Platform.CHATWOOT, account.id, account.name, True, "https://cw", "tok", "7")


@pytest.fixture
def app_instance(make_app):
    app = make_app()
    return PlatformInstance(Platform.DIFY, app.id, app.name, True, "https://dify", "key", app_ref="app-1")


@pytest.fixture
def chatwoot_client():
    client = Mock()
    client.get_or_create_api_inbox.return_value = 4
    client.find_conversation_by_source_id.return_value = None
    client.create_contact.return_value = {"id": 77}
    client.create_conversation.return_value = {"id": 501}
    client.send_message.return_value = {"id": 900}
    return client


class TestChatwootTarget:
    def test_creates_conversation_once_and_reuses_it(
        self, db_session, config_service, bot, account_instance, chatwoot_client, make_mapping
    ):
        mapping = make_mapping(bot.id, chatwoot_account_id=account_instance.id)
        target = ChatwootTarget(account_instance, db_session, config_service, client=chatwoot_client)

        first = target.resolve_conversation(telegram_message(bot.id), mapping)
        second = target.resolve_conversation(telegram_message(bot.id), mapping)

        assert first == second == "501"
        chatwoot_client.create_conversation.assert_called_once()
        chatwoot_client.find_conversation_by_source_id.assert_called_once_with(4, build_source_id(bot.id, "42"))

        link = links.find_link(db_session, bot.id, "42", Platform.CHATWOOT, account_instance.id)
        assert link.remote_conversation_id == "501"
        assert link.source_id == f"telegram_{bot.id}_42"

    def test_existing_remote_conversation_is_found_before_create(
        self, db_session, config_service, bot, account_instance, chatwoot_client, make_mapping
    ):
        mapping = make_mapping(bot.id, chatwoot_account_id=account_instance.id)
        chatwoot_client.find_conversation_by_source_id.return_value = {"id": 612}
        target = ChatwootTarget(account_instance, db_session, config_service, client=chatwoot_client)

        assert target.resolve_conversation(telegram_message(bot.id), mapping) == "612"
        chatwoot_client.create_contact.assert_not_called()
        chatwoot_client.create_conversation.assert_not_called()

    def test_conversation_attributes(
        self, db_session, config_service, bot, account_instance, chatwoot_client, make_mapping
    ):
        mapping = make_mapping(bot.id, chatwoot_account_id=account_instance.id)
        target = ChatwootTarget(account_instance, db_session, config_service, client=chatwoot_client)

        target.resolve_conversation(telegram_message(bot.id), mapping)

        contact_kwargs = chatwoot_client.create_contact.call_args[1]
        assert contact_kwargs["name"] == "Ann Lee"
        attributes = chatwoot_client.create_conversation.call_args[1]["additional_attributes"]
        assert attributes["platform"] == "telegram"
        assert attributes["chat_id"] == "42"
        assert attributes["telegram_bot_id"] == bot.id
        assert attributes["chat_type"] == "private"
        assert attributes["telegram_username"] == "ann"
        chatwoot_client.create_contact_inbox.assert_called_once_with(77, 4, f"telegram_{bot.id}_42")

    def test_forward_group_message_prefixes_sender(
        self, db_session, config_service, bot, account_instance, chatwoot_client, make_mapping
    ):
        mapping = make_mapping(bot.id, chatwoot_account_id=account_instance.id)
        target = ChatwootTarget(account_instance, db_session, config_service, client=chatwoot_client)

        result = target.forward(telegram_message(bot.id, chat_id="-100", chat_type="group"), mapping, "source_to_target")

        assert result.success is True
        assert result.conversation_id == "501"
        assert result.message_id == "900"
        args, kwargs = chatwoot_client.send_message.call_args
        assert args == (501, "[Ann Lee]: Where is my order?")
        assert kwargs["message_type"] == "incoming"

    def test_ai_reply_is_outgoing_and_marked_forwarded(
        self, db_session, config_service, bot, account_instance, chatwoot_client, make_mapping
    ):
        mapping = make_mapping(bot.id, chatwoot_account_id=account_instance.id, dify_app_id=None)
        link = links.get_or_create_link(db_session, bot.id, "42", Platform.CHATWOOT, account_instance.id, "private")
        links.set_remote_conversation(db_session, link, 501)
        reply = CanonicalMessage(
            platform=Platform.DIFY,
            instance_id=3,
            conversation_id="dc-1",
            sender_id="dify",
            sender_name="Assistant",
            content="Your order ships today.",
            metadata={"chatId": "42", "telegramBotId": bot.id},
        )
        target = ChatwootTarget(account_instance, db_session, config_service, client=chatwoot_client)

        target.forward(reply, mapping, "target_to_source")

        args, kwargs = chatwoot_client.send_message.call_args
        assert args == (501, "Your order ships today.")
        assert kwargs["message_type"] == "outgoing"
        assert kwargs["content_attributes"]["forwarded"] is True

    def test_inbox_id_is_cached(self, db_session, config_service, bot, account_instance, chatwoot_client, clock):
        target = ChatwootTarget(
            account_instance, db_session, config_service, client=chatwoot_client, inbox_cache=TTLCache(300, clock=clock)
        )

        target._inbox_id(Platform.TELEGRAM)
        target._inbox_id(Platform.TELEGRAM)

        chatwoot_client.get_or_create_api_inbox.assert_called_once_with("Telegram")


class TestDifyTarget:
    def test_history_disabled_sends_fresh_turns(self, db_session, config_service, bot, app_instance, make_mapping):
        mapping = make_mapping(bot.id, dify_app_id=app_instance.id)
        client = Mock()
        client.chat.return_value = DifyReply(answer="Hello!", conversation_id="dc-1", message_id="dm-1")
        target = DifyTarget(app_instance, db_session, config_service, client=client)

        target.forward(telegram_message(bot.id), mapping, "source_to_target")
        result = target.forward(telegram_message(bot.id), mapping, "source_to_target")

        assert client.chat.call_args[1]["conversation_id"] is None
        assert result.reply == "Hello!"
        assert links.find_link(db_session, bot.id, "42", Platform.DIFY, app_instance.id).remote_conversation_id == "dc-1"

    def test_history_enabled_reuses_token(self, db_session, config_service, bot, app_instance, make_mapping):
        config_service.set("dify.enableConversationHistory", True)
        mapping = make_mapping(bot.id, dify_app_id=app_instance.id)
        client = Mock()
        client.chat.return_value = DifyReply(answer="Hello!", conversation_id="dc-1")
        target = DifyTarget(app_instance, db_session, config_service, client=client)

        target.forward(telegram_message(bot.id), mapping, "source_to_target")
        target.forward(telegram_message(bot.id), mapping, "source_to_target")

        first_call, second_call = client.chat.call_args_list
        assert first_call[1]["conversation_id"] is None
        assert second_call[1]["conversation_id"] == "dc-1"
        assert second_call[1]["user"] == f"telegram_{bot.id}_42"

    def test_each_app_keeps_its_own_token(self, db_session, config_service, bot, make_app, make_mapping):
        config_service.set("dify.enableConversationHistory", True)
        first_app, second_app = make_app(name="Sales", app_id="app-1"), make_app(name="Support", app_id="app-2")
        targets = []
        for app, token in ((first_app, "conv-A"), (second_app, "conv-B")):
            mapping = make_mapping(bot.id, dify_app_id=app.id)
            client = Mock()
            client.chat.return_value = DifyReply(answer="Hello!", conversation_id=token)
            instance = PlatformInstance(Platform.DIFY, app.id, app.name, True, "https://dify", "key", app_ref=app.app_id)
            targets.append((DifyTarget(instance, db_session, config_service, client=client), client, mapping))

        for _ in range(2):
            for target, _client, mapping in targets:
                target.forward(telegram_message(bot.id), mapping, "source_to_target")

        (_, first_client, _), (_, second_client, _) = targets
        assert [call[1]["conversation_id"] for call in first_client.chat.call_args_list] == [None, "conv-A"]
        assert [call[1]["conversation_id"] for call in second_client.chat.call_args_list] == [None, "conv-B"]

    def test_reply_is_shaped(self, db_session, config_service, bot, app_instance, make_mapping):
        config_service.set("dify.simpleGreetingMaxLength", 10)
        mapping = make_mapping(bot.id, dify_app_id=app_instance.id)
        client = Mock()
        client.chat.return_value = DifyReply(answer=["Hello there, lovely to meet you!"], conversation_id="dc-1")
        target = DifyTarget(app_instance, db_session, config_service, client=client)

        result = target.forward(telegram_message(bot.id, content="hi"), mapping, "source_to_target")

        assert result.reply == "Hello ther..."

    def test_test_connection_reports_not_configured(self, db_session, config_service, app_instance):
        client = Mock()
        client.test_completion.side_effect = NotConfiguredError("dify", ["api_key"])
        target = DifyTarget(app_instance, db_session, config_service, client=client)

        result = target.test_connection()

        assert result.ok is False
        assert result.error_code == "not_configured"


class TestTelegramTarget:
    @pytest.fixture
    def bot_instance(self, bot):
        return PlatformInstance(Platform.TELEGRAM, bot.id, bot.name, True, token="123:abc", username="support_bot")

    def test_agent_reply_goes_to_linked_chat(self, db_session, config_service, bot, bot_instance, make_mapping):
        mapping = make_mapping(bot.id, chatwoot_account_id=None, dify_app_id=None)
        link = links.get_or_create_link(db_session, bot.id, "42", Platform.CHATWOOT, 9, "private")
        links.set_remote_conversation(db_session, link, 501)
        client = Mock()
        client.send_message.return_value = {"message_id": 11}
        target = TelegramTarget(bot_instance, db_session, config_service, client=client)
        message = CanonicalMessage(
            platform=Platform.CHATWOOT,
            instance_id=9,
            conversation_id="501",
            sender_id="3",
            sender_name="Agent Smith",
            content="Shipped <today>",
        )

        result = target.forward(message, mapping, "target_to_source")

        assert result.conversation_id == "42"
        assert result.message_id == "11"
        args, kwargs = client.send_message.call_args
        assert args == ("42", "<b>Agent Smith:</b>\nShipped &lt;today&gt;")
        assert kwargs["parse_mode"] == "HTML"

    def test_falls_back_to_chat_hint(self, db_session, config_service, bot, bot_instance, make_mapping):
        mapping = make_mapping(bot.id)
        target = TelegramTarget(bot_instance, db_session, config_service, client=Mock())
        message = CanonicalMessage(
            platform=Platform.CHATWOOT,
            instance_id=9,
            conversation_id="777",
            sender_id="3",
            sender_name="Agent",
            content="Hi",
            metadata={"chatId": "55", "telegramBotId": bot.id},
        )

        assert target.resolve_conversation(message, mapping) == "55"

    def test_unknown_conversation_raises(self, db_session, config_service, bot, bot_instance, make_mapping):
        mapping = make_mapping(bot.id)
        target = TelegramTarget(bot_instance, db_session, config_service, client=Mock())
        message = CanonicalMessage(
            platform=Platform.CHATWOOT,
            instance_id=9,
            conversation_id="777",
            sender_id="3",
            sender_name="Agent",
            content="Hi",
        )

        with pytest.raises(NotFoundError):
            target.resolve_conversation(message, mapping)

    def test_markdown_mode_sends_unescaped_text(self, db_session, config_service, bot, bot_instance, make_mapping):
        config_service.set("telegram.parseMode", "Markdown")
        mapping = make_mapping(bot.id)
        client = Mock()
        client.send_message.return_value = {"message_id": 12}
        target = TelegramTarget(bot_instance, db_session, config_service, client=client)

        target.forward(telegram_message(bot.id, content="a < b & c"), mapping, "target_to_source")

        args, kwargs = client.send_message.call_args
        assert args == ("42", "a < b & c")
        assert kwargs["parse_mode"] == "Markdown"

    def test_agent_message_is_marked_delivered(self, db_session, config_service, bot, bot_instance, make_mapping):
        mapping = make_mapping(bot.id)
        link = links.get_or_create_link(db_session, bot.id, "42", Platform.CHATWOOT, 9, "private")
        links.set_remote_conversation(db_session, link, 501)
        client = Mock()
        client.send_message.return_value = {"message_id": 11}
        target = TelegramTarget(bot_instance, db_session, config_service, client=client)
        message = CanonicalMessage(
            platform=Platform.CHATWOOT,
            instance_id=9,
            conversation_id="501",
            sender_id="3",
            sender_name="Agent",
            content="Hi",
            message_id="900",
        )

        target.forward(message, mapping, "target_to_source")

        assert links.find_link(db_session, bot.id, "42", Platform.CHATWOOT, 9).last_forwarded_message_id == "900"


class TestTargetRegistry:
    def test_registered_factory_replaces_builtin(self, db_session, config_service, app_instance):
        built = Mock()
        registry = TargetRegistry()
        registry.register(Platform.DIFY, lambda instance, db, config: built)

        assert registry.build(Platform.DIFY, app_instance, db_session, config_service) is built

