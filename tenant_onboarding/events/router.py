import logging
from typing import Callable, Dict

from sqlalchemy.orm import Session

from tenant_onboarding.core.config import PIPELINE_EVENT_SOURCE
from tenant_onboarding.core.deps import Runtime
from tenant_onboarding.deploy.service import handle_deployed, handle_pipeline_changed, handle_provisioned
from tenant_onboarding.events.schemas import EventEnvelope, OnboardingEvent
from tenant_onboarding.provisioning.service import handle_base_provisioned, handle_tenant_assigned, handle_validated
from tenant_onboarding.provisioning.stacks import handle_stack_status_changed
from tenant_onboarding.validation.worker import handle_initiated

logger = logging.getLogger(__name__)

Handler = Callable[[Session, Runtime, EventEnvelope], None]


def handle_failed(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    # The record was already marked failed by whoever published this
    logger.info("Onboarding %s failed: %s", envelope.onboarding_id, envelope.detail.get("message"))


HANDLERS: Dict[OnboardingEvent, Handler] = {
    OnboardingEvent.INITIATED: handle_initiated,
    OnboardingEvent.VALIDATED: handle_validated,
    OnboardingEvent.TENANT_ASSIGNED: handle_tenant_assigned,
    OnboardingEvent.STACK_STATUS_CHANGED: handle_stack_status_changed,
    OnboardingEvent.BASE_PROVISIONED: handle_base_provisioned,
    OnboardingEvent.PROVISIONED: handle_provisioned,
    OnboardingEvent.DEPLOYMENT_PIPELINE_CHANGED: handle_pipeline_changed,
    OnboardingEvent.DEPLOYED: handle_deployed,
    OnboardingEvent.FAILED: handle_failed,
}

_missing = set(OnboardingEvent) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler for onboarding events {sorted(event.value for event in _missing)}")

# Stack notifications are keyed by tenant and stack id. CodePipeline events
# arrive from their own source and never reach this check.
NO_ONBOARDING_ID = {OnboardingEvent.STACK_STATUS_CHANGED}


def handle_event(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    """Dispatch one bus event to its handler.

    Unrecognized events are logged and dropped. Handler exceptions propagate
    so the delivery is retried.
    """
    if envelope.source == PIPELINE_EVENT_SOURCE:
        handle_pipeline_changed(db, runtime, envelope)
        return
    if envelope.source != runtime.settings.event_source:
        logger.error("Can't process event from unknown source %s", envelope.source)
        return

    event = OnboardingEvent.from_detail_type(envelope.detail_type)
    if event is None:
        logger.error("Unknown event detail-type %s", envelope.detail_type)
        return
    if event not in NO_ONBOARDING_ID and not envelope.onboarding_id:
        logger.error("Missing onboardingId in event detail %s", envelope.detail)
        return

    logger.info("Handling %s event %s", event.value, envelope.id, extra={"onboarding_id": envelope.onboarding_id})
    HANDLERS[event](db, runtime, envelope)
