import logging

from sqlalchemy.orm import Session

from tenant_onboarding.core.deps import Runtime
from tenant_onboarding.events.schemas import EventEnvelope, OnboardingEvent
from tenant_onboarding.onboarding.service import (
    fail_onboarding,
    find_stack,
    get_onboarding_by_tenant_id,
    save_onboarding,
    update_status,
)
from tenant_onboarding.onboarding.status import OnboardingStatus
from tenant_onboarding.provisioning.lifecycle import (
    aggregate_status,
    base_stacks_complete,
    stack_complete,
    stacks_complete,
)

logger = logging.getLogger(__name__)


def handle_stack_status_changed(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    # Stack notifications carry the tenant id and stack id, not the onboarding id
    if not envelope.has("tenantId", "stackId", "stackStatus"):
        logger.error("Missing tenantId, stackId or stackStatus in event detail %s", envelope.detail)
        return
    tenant_id = str(envelope.detail["tenantId"])
    stack_id = str(envelope.detail["stackId"])
    stack_status = str(envelope.detail["stackStatus"])

    onboarding = get_onboarding_by_tenant_id(db, tenant_id)
    if onboarding is None:
        logger.error("Can't find onboarding record for tenant %s", tenant_id)
        return
    stack = find_stack(onboarding, stack_id)
    if stack is None:
        logger.error("Onboarding %s has no stack %s", onboarding.id, stack_id)
        return

    became_complete = False
    if stack.status != stack_status:
        logger.info("Stack %s status changing from %s to %s", stack.name, stack.status, stack_status)
        became_complete = stack_complete(stack_status) and not stack_complete(stack.status)
        stack.status = stack_status
        save_onboarding(db, onboarding)

    status = aggregate_status(onboarding.stacks)
    if status == OnboardingStatus.failed:
        if onboarding.status != OnboardingStatus.failed.value:
            fail_onboarding(db, runtime.publisher, onboarding.id, f"Stack {stack.name} is {stack_status}")
        return
    update_status(db, onboarding, status)

    if not became_complete or onboarding.status == OnboardingStatus.failed.value:
        return
    if stack.base_stack and base_stacks_complete(onboarding.stacks):
        logger.info("Onboarding base stacks provisioned")
        runtime.publisher.publish(OnboardingEvent.BASE_PROVISIONED.value, {"onboardingId": onboarding.id})
    elif stacks_complete(onboarding.stacks):
        logger.info("All onboarding stacks provisioned")
        runtime.publisher.publish(OnboardingEvent.PROVISIONED.value, {"onboardingId": onboarding.id})
