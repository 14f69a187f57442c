import json
import logging
from typing import Any

from tenant_onboarding.core.errors import EventPublishError

logger = logging.getLogger(__name__)


class EventPublisher:
    def __init__(self, client, event_bus: str, source: str):
        self._client = client
        self.event_bus = event_bus
        self.source = source

    def publish(self, detail_type: str, detail: dict[str, Any]) -> str:
        entry = {
            "EventBusName": self.event_bus,
            "Source": self.source,
            "DetailType": detail_type,
            "Detail": json.dumps(detail, default=str),
        }
        resp = self._client.put_events(Entries=[entry])
        result = (resp.get("Entries") or [{}])[0]
        if resp.get("FailedEntryCount") or not result.get("EventId"):
            logger.error("Put event failed %s %s", result, detail_type)
            raise EventPublishError(f"Failed to publish {detail_type}: {result.get('ErrorMessage', 'unknown error')}")
        logger.info("Published %s event %s", detail_type, result["EventId"])
        return result["EventId"]
