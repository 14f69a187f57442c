import json
import logging

from tenant_onboarding.core.logging import JsonLogFormatter


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("tenant_onboarding.test", logging.INFO, __file__, 1, "Handling %s", ("event",), None)
    record.onboarding_id = "abc"

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["message"] == "Handling event"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "tenant_onboarding.test"
    assert payload["onboarding_id"] == "abc"
