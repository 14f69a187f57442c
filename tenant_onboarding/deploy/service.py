import logging
from typing import Optional

from sqlalchemy.orm import Session

from tenant_onboarding.core.config import Settings
from tenant_onboarding.core.deps import Runtime
from tenant_onboarding.events.schemas import TENANT_STATUS_CHANGED, WORKLOAD_READY_FOR_DEPLOYMENT, EventEnvelope
from tenant_onboarding.onboarding.service import (
    get_onboarding,
    get_onboarding_by_tenant_id,
    get_onboarding_by_tenant_prefix,
    update_status,
)
from tenant_onboarding.onboarding.status import OnboardingStatus

logger = logging.getLogger(__name__)

PIPELINE_STARTED = "STARTED"
PIPELINE_SUCCEEDED = "SUCCEEDED"
PIPELINE_STOPPED = {"FAILED", "CANCELED"}


def handle_provisioned(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    onboarding = get_onboarding(db, envelope.onboarding_id)
    if onboarding is None:
        logger.error("Can't find onboarding record for %s", envelope.onboarding_id)
        return
    if onboarding.status != OnboardingStatus.provisioned.value:
        logger.warning("Skipping deployment for onboarding %s with status %s", onboarding.id, onboarding.status)
        return

    logger.info("Triggering deployment pipelines for tenant %s", onboarding.tenant_id)
    app_config = runtime.app_settings.get_app_config() or {}
    for service in (app_config.get("services") or {}).values():
        runtime.publisher.publish(
            WORKLOAD_READY_FOR_DEPLOYMENT,
            {
                "tenantId": onboarding.tenant_id,
                "repository-name": service.get("containerRepo"),
                "image-tag": service.get("containerTag") or "latest",
            },
        )


def pipeline_tenant_key(settings: Settings, pipeline: Optional[str]) -> Optional[str]:
    """Tenant id prefix from a ``sb-<env>-tenant-<tenant>-<service>`` pipeline name."""
    prefix = settings.stack_prefix
    if not pipeline or not pipeline.startswith(prefix):
        return None
    remainder = pipeline[len(prefix):]
    if "-" not in remainder:
        logger.error("Unexpected CodePipeline name pattern %s", pipeline)
        return remainder or None
    return remainder.split("-", 1)[0]


def handle_pipeline_changed(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    detail = envelope.detail
    pipeline = detail.get("pipeline")
    tenant_key = detail.get("tenantId")
    if envelope.onboarding_id:
        onboarding = get_onboarding(db, envelope.onboarding_id)
    elif tenant_key:
        onboarding = get_onboarding_by_tenant_id(db, str(tenant_key))
    else:
        tenant_key = pipeline_tenant_key(runtime.settings, pipeline)
        if not tenant_key:
            logger.info("Ignoring pipeline %s, not a tenant pipeline", pipeline)
            return
        onboarding = get_onboarding_by_tenant_prefix(db, tenant_key)
    if onboarding is None:
        logger.error("Can't find onboarding record for %s", envelope.onboarding_id or tenant_key)
        return

    state = detail.get("state")
    tenant_id = onboarding.tenant_id
    if state == PIPELINE_STARTED:
        update_status(db, onboarding, OnboardingStatus.deploying)
    elif state in PIPELINE_STOPPED:
        # First runs fail until the service image is published; report only
        runtime.publisher.publish(TENANT_STATUS_CHANGED, {"tenantId": tenant_id, "onboardingStatus": "failed"})
    elif state == PIPELINE_SUCCEEDED:
        # TODO: track every service's pipeline before declaring the tenant deployed
        runtime.publisher.publish(TENANT_STATUS_CHANGED, {"tenantId": tenant_id, "onboardingStatus": "succeeded"})
    else:
        logger.debug("Ignoring pipeline %s state %s", pipeline, state)


def handle_deployed(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    onboarding = get_onboarding(db, envelope.onboarding_id)
    if onboarding is None:
        logger.error("Can't find onboarding record for %s", envelope.onboarding_id)
        return
    update_status(db, onboarding, OnboardingStatus.succeeded)
