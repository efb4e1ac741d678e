import json
import logging

from vpnpass.core.logging import JsonFormatter


def _record(msg, **extra):
    record = logging.LogRecord("vpnpass.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extra_fields_are_copied():
    payload = json.loads(JsonFormatter().format(_record("credential_created", credential="alice", days=30, junk="x")))

    assert payload["message"] == "credential_created"
    assert payload["credential"] == "alice"
    assert payload["days"] == 30
    assert "junk" not in payload


def test_bot_token_is_masked():
    token = "123456789:AAH" + "x" * 32
    line = JsonFormatter().format(_record(f"POST https://api.telegram.org/bot{token}/getMe failed"))

    assert token not in line
    assert "<bot-token>" in line
