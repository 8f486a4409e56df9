import json
import logging

from chatbridge.logging_config import JSONFormatter, LoggerAdapter, get_logger


def make_record(context=None):
    record = logging.LogRecord("chatbridge.routing_engine", logging.INFO, __file__, 1, "Routing completed", None, None)
    if context is not None:
        record.context = context
    return record


class TestJSONFormatter:
    def test_routing_keys_are_top_level(self):
        entry = json.loads(
            JSONFormatter().format(make_record({"platform": "telegram", "instance_id": 3, "targets": 2}))
        )

        assert entry["msg"] == "Routing completed"
        assert entry["platform"] == "telegram"
        assert entry["instance_id"] == 3
        assert entry["context"] == {"targets": 2}

    def test_without_context(self):
        entry = json.loads(JSONFormatter().format(make_record()))

        assert "context" not in entry
        assert entry["level"] == "INFO"


class TestLoggerAdapter:
    def test_merges_fixed_and_call_context(self):
        adapter = LoggerAdapter(get_logger("test"), {"platform": "chatwoot"})

        msg, kwargs = adapter.process("hello", {"context": {"mapping_id": 5}})

        assert msg == "hello"
        assert kwargs["extra"] == {"context": {"platform": "chatwoot", "mapping_id": 5}}

    def test_logger_namespace(self):
        assert get_logger("webhooks").name == "chatbridge.webhooks"
