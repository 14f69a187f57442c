"""Onboarding validation gate.

Each queue message names one onboarding.  Checks run in order and stop at
the first failure; a message ends up as one of

* retry   - left on the queue for redelivery (reported as a batch item failure)
* fatal   - onboarding marked failed, message moved to the dead-letter queue
* success - onboarding marked validated and ``Onboarding Validated`` published

Fatal messages are sent to the dead-letter queue together once the whole
batch has been classified.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from botocore.exceptions import ClientError
from sqlalchemy.orm import Session

from tenant_onboarding.clients.aws import error_code, error_message
from tenant_onboarding.core.deps import Runtime
from tenant_onboarding.events.schemas import EventEnvelope, OnboardingEvent
from tenant_onboarding.onboarding.service import fail_onboarding, get_onboarding, update_status
from tenant_onboarding.onboarding.status import OnboardingStatus
from tenant_onboarding.provisioning.network import available_address_block

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    retry = "retry"
    fatal = "fatal"
    success = "success"


def handle_initiated(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    onboarding = get_onboarding(db, envelope.onboarding_id)
    if onboarding is None:
        logger.error("Can't find onboarding record for %s", envelope.onboarding_id)
        return
    if onboarding.status != OnboardingStatus.created.value:
        logger.error("Can not queue onboarding %s for validation with status %s", onboarding.id, onboarding.status)
        return

    logger.info("Publishing message to onboarding validation queue %s", onboarding.id)
    runtime.sqs.send_message(
        QueueUrl=runtime.settings.validation_queue_url,
        MessageBody=json.dumps({"onboardingId": onboarding.id}),
    )
    update_status(db, onboarding, OnboardingStatus.validating)


def _message_onboarding_id(body: Optional[str]) -> Optional[str]:
    try:
        detail = json.loads(body or "")
    except ValueError:
        return None
    if not isinstance(detail, dict):
        return None
    return detail.get("onboardingId")


def _image_available(runtime: Runtime, repository: str, tag: str) -> bool:
    paginator = runtime.ecr.get_paginator("list_images")
    try:
        for page in paginator.paginate(repositoryName=repository):
            if any(image.get("imageTag") == tag for image in page.get("imageIds", [])):
                return True
    except ClientError as exc:
        if error_code(exc) == "RepositoryNotFoundException":
            logger.warning("Container repository %s does not exist yet", repository)
            return False
        raise
    return False


def _missing_images(runtime: Runtime, services: Dict[str, dict]) -> List[str]:
    missing = []
    for service_name, service in services.items():
        repository = service.get("containerRepo")
        tag = service.get("containerTag") or "latest"
        if not repository:
            logger.warning("Application Service %s does not have a container image repository defined", service_name)
            missing.append(service_name)
        elif not _image_available(runtime, repository, tag):
            logger.warning("Application Service %s does not have an available image tagged %s", service_name, tag)
            missing.append(service_name)
    return missing


def _subdomain_in_use(runtime: Runtime, hosted_zone: str, domain_name: str, subdomain: str) -> bool:
    suffix = "." + domain_name.rstrip(".").lower()
    paginator = runtime.route53.get_paginator("list_resource_record_sets")
    for page in paginator.paginate(HostedZoneId=hosted_zone):
        for record_set in page.get("ResourceRecordSets", []):
            if record_set.get("Type") != "A":
                continue
            name = record_set.get("Name", "").rstrip(".").lower()
            if name.endswith(suffix) and name[: -len(suffix)] == subdomain.lower():
                return True
    return False


def validate_onboarding(db: Session, runtime: Runtime, onboarding_id: Optional[str]) -> Outcome:
    onboarding = get_onboarding(db, onboarding_id) if onboarding_id else None
    if onboarding is None or not onboarding.request:
        logger.error("No onboarding request data for %s", onboarding_id)
        fail_onboarding(db, runtime.publisher, onboarding_id, "Onboarding record has no request content")
        return Outcome.fatal
    if onboarding.status == OnboardingStatus.validated.value and not onboarding.tenant_id:
        # Validated was committed but its event never went out
        logger.warning("Republishing validated event for onboarding %s", onboarding.id)
        runtime.publisher.publish(OnboardingEvent.VALIDATED.value, {"onboardingId": onboarding.id})
        return Outcome.success
    if onboarding.status != OnboardingStatus.validating.value:
        logger.warning("Onboarding in unexpected state for validation %s %s", onboarding.id, onboarding.status)
        fail_onboarding(
            db, runtime.publisher, onboarding.id, f"Onboarding can't be validated when in state {onboarding.status}"
        )
        return Outcome.fatal

    app_config = runtime.app_settings.get_app_config() or {}
    services = app_config.get("services") or {}
    if not services:
        logger.warning("No application services defined in app config")
        return Outcome.retry
    if _missing_images(runtime, services):
        return Outcome.retry

    if not available_address_block(db):
        fail_onboarding(db, runtime.publisher, onboarding.id, "No CIDR blocks available for new VPC")
        return Outcome.fatal

    subdomain = (onboarding.request.get("subdomain") or "").strip()
    if subdomain:
        hosted_zone = app_config.get("hostedZone")
        domain_name = app_config.get("domainName")
        if not hosted_zone or not domain_name:
            fail_onboarding(
                db,
                runtime.publisher,
                onboarding.id,
                f"Can't define tenant subdomain {subdomain} without a domain name and hosted zone.",
            )
            return Outcome.fatal
        try:
            in_use = _subdomain_in_use(runtime, hosted_zone, domain_name, subdomain)
        except ClientError as exc:
            fail_onboarding(
                db, runtime.publisher, onboarding.id, f"Can't list Route53 record sets {error_message(exc)}"
            )
            return Outcome.fatal
        if in_use:
            fail_onboarding(
                db,
                runtime.publisher,
                onboarding.id,
                f"Tenant subdomain {subdomain} is already in use for this hosted zone.",
            )
            return Outcome.fatal

    try:
        quota = runtime.app_settings.check_quotas()
    except (httpx.HTTPError, ValueError):
        logger.warning("Error checking service quotas", exc_info=True)
        return Outcome.retry
    if not quota["passed"]:
        fail_onboarding(
            db, runtime.publisher, onboarding.id, f"Provisioning will exceed limits {quota['message']}".strip()
        )
        return Outcome.fatal

    logger.info("Onboarding request validated for %s", onboarding.id)
    update_status(db, onboarding, OnboardingStatus.validated)
    runtime.publisher.publish(OnboardingEvent.VALIDATED.value, {"onboardingId": onboarding.id})
    return Outcome.success


def _dead_letter(runtime: Runtime, messages: List[Dict[str, Any]]) -> None:
    logger.info("Moving %d non-recoverable failures to DLQ", len(messages))
    resp = runtime.sqs.send_message_batch(
        QueueUrl=runtime.settings.validation_dlq_url,
        Entries=[{"Id": message["messageId"], "MessageBody": message.get("body") or ""} for message in messages],
    )
    if resp.get("Failed"):
        logger.error("DLQ send failures %s", resp["Failed"])


def process_validation_batch(db: Session, runtime: Runtime, records: List[Dict[str, Any]]) -> Dict[str, Any]:
    retry: List[str] = []
    fatal: List[Dict[str, Any]] = []
    for record in records:
        message_id = record.get("messageId")
        onboarding_id = _message_onboarding_id(record.get("body"))
        logger.info("Processing onboarding validation for %s", onboarding_id)
        try:
            outcome = validate_onboarding(db, runtime, onboarding_id)
        except Exception:
            # One bad message must not cost its siblings their outcome
            logger.exception("Validation of message %s failed; leaving it for redelivery", message_id)
            db.rollback()
            outcome = Outcome.retry

        if outcome == Outcome.retry:
            retry.append(message_id)
        elif outcome == Outcome.fatal:
            fatal.append(record)

    if fatal:
        _dead_letter(runtime, fatal)
    return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in retry]}
