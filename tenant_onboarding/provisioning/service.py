import logging
from typing import Dict, List, Optional

from botocore.exceptions import ClientError
from sqlalchemy.orm import Session

from tenant_onboarding.clients.aws import error_message, is_no_updates_error
from tenant_onboarding.core.deps import Runtime
from tenant_onboarding.core.errors import AddressBlockUnavailableError, ParameterError
from tenant_onboarding.events.schemas import TENANT_STATUS_CHANGED, EventEnvelope, OnboardingEvent
from tenant_onboarding.onboarding.models import OnboardingModel
from tenant_onboarding.onboarding.schemas import TenantUpdate
from tenant_onboarding.onboarding.service import (
    add_stack,
    assign_tenant_id,
    fail_onboarding,
    get_onboarding,
    save_onboarding,
)
from tenant_onboarding.onboarding.status import OnboardingStatus
from tenant_onboarding.provisioning.lifecycle import IN_PROGRESS_STATUS
from tenant_onboarding.provisioning.network import assign_address_block, cidr_prefix, get_address_block
from tenant_onboarding.provisioning.parameters import (
    APP_TEMPLATE,
    BASE_TEMPLATE,
    STACK_CAPABILITIES,
    app_stack_name,
    app_stack_parameters,
    app_update_parameters,
    base_stack_name,
    base_stack_parameters,
    base_update_parameters,
    control_plane_parameters,
    path_priority,
    render_env_file,
    service_discovery_entries,
    tenant_resources,
)

logger = logging.getLogger(__name__)

CONTROL_PLANE_STACK_SETTING = "SAAS_BOOST_STACK"
DOMAIN_NAME_SETTING = "DOMAIN_NAME"


def _load(db: Session, envelope: EventEnvelope) -> OnboardingModel | None:
    onboarding = get_onboarding(db, envelope.onboarding_id)
    if onboarding is None:
        logger.error("Can't find onboarding record for %s", envelope.onboarding_id)
    return onboarding


def _create_stack(runtime: Runtime, name: str, template: str, topic_arn: str, parameters: list, tenant_id: str) -> str:
    resp = runtime.cloudformation.create_stack(
        StackName=name,
        TemplateURL=runtime.settings.template_url(template),
        Parameters=parameters,
        Capabilities=STACK_CAPABILITIES,
        NotificationARNs=[topic_arn],
        # Failed stacks are kept around for debugging
        DisableRollback=True,
        Tags=[{"Key": "TenantId", "Value": tenant_id}],
    )
    return resp["StackId"]


def handle_validated(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    """Register the tenant with the directory and reserve its address block."""
    onboarding = _load(db, envelope)
    if onboarding is None:
        return
    if onboarding.status != OnboardingStatus.validated.value:
        logger.error("Can't assign a tenant to onboarding %s with status %s", onboarding.id, onboarding.status)
        return
    if onboarding.tenant_id:
        # A previous delivery registered the tenant but stopped before TenantAssigned went out
        tenant_id = onboarding.tenant_id
        logger.warning("Resuming tenant assignment for onboarding %s tenant %s", onboarding.id, tenant_id)
        tenant = runtime.tenants.get_tenant(tenant_id)
        if not tenant:
            fail_onboarding(db, runtime.publisher, onboarding.id, f"Can't fetch tenant {tenant_id}")
            return
    else:
        tenant = runtime.tenants.insert_tenant(onboarding.request or {})
        if not tenant or not tenant.get("id"):
            fail_onboarding(db, runtime.publisher, onboarding.id, "Tenant insert API call failed")
            return
        tenant_id = str(tenant["id"])
        assign_tenant_id(onboarding, tenant_id)
        save_onboarding(db, onboarding)

    try:
        assign_address_block(db, tenant_id)
    except AddressBlockUnavailableError:
        # Validation already checked, but another tenant may have taken the last block
        db.rollback()
        fail_onboarding(db, runtime.publisher, onboarding.id, "Could not assign CIDR for tenant VPC")
        return

    runtime.publisher.publish(
        OnboardingEvent.TENANT_ASSIGNED.value,
        {"onboardingId": onboarding.id, "tenant": tenant},
    )


def handle_tenant_assigned(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    """Provision the tenant's base infrastructure stack."""
    if not envelope.has("tenant"):
        logger.error("Missing tenant in event detail %s", envelope.detail)
        return
    onboarding = _load(db, envelope)
    if onboarding is None:
        return
    if onboarding.stacks or onboarding.status != OnboardingStatus.validated.value:
        logger.warning("Base stack already requested for onboarding %s (%s)", onboarding.id, onboarding.status)
        return

    settings = runtime.settings
    tenant_id = onboarding.tenant_id
    tenant = envelope.detail["tenant"]
    cidr_block = get_address_block(db, tenant_id) if tenant_id else None
    if not cidr_block:
        fail_onboarding(db, runtime.publisher, onboarding.id, f"Can't find assigned CIDR for tenant {tenant_id}")
        return

    app_config = runtime.app_settings.get_app_config()
    if not app_config:
        fail_onboarding(db, runtime.publisher, onboarding.id, "Settings getAppConfig API call failed")
        return

    try:
        parameters = base_stack_parameters(settings, app_config, tenant, tenant_id, cidr_prefix(cidr_block))
    except ParameterError as exc:
        fail_onboarding(db, runtime.publisher, onboarding.id, str(exc))
        return

    stack_name = base_stack_name(settings, tenant_id)
    logger.info("Creating base stack %s for tenant %s", stack_name, tenant_id)
    try:
        stack_id = _create_stack(runtime, stack_name, BASE_TEMPLATE, settings.base_stack_topic_arn, parameters, tenant_id)
    except ClientError as exc:
        logger.error("cloudformation:CreateStack failed %s", error_message(exc))
        fail_onboarding(db, runtime.publisher, onboarding.id, error_message(exc))
        raise

    add_stack(onboarding, stack_name, stack_id, True, IN_PROGRESS_STATUS)
    onboarding.status = OnboardingStatus.provisioning.value
    save_onboarding(db, onboarding)
    logger.info("Base stack id %s", stack_id)
    runtime.publisher.publish(
        TENANT_STATUS_CHANGED,
        {"tenantId": tenant_id, "onboardingStatus": OnboardingStatus.provisioning.value},
    )


def handle_base_provisioned(db: Session, runtime: Runtime, envelope: EventEnvelope) -> None:
    """Provision one app stack per configured service.

    The first failing service fails the onboarding; stacks already created
    for earlier services are left in place.
    """
    onboarding = _load(db, envelope)
    if onboarding is None:
        return
    if onboarding.status != OnboardingStatus.provisioning.value:
        logger.error("Can't provision app stacks for onboarding %s with status %s", onboarding.id, onboarding.status)
        return
    if any(not stack.base_stack for stack in onboarding.stacks):
        logger.warning("App stacks already requested for onboarding %s", onboarding.id)
        return

    settings = runtime.settings
    tenant_id = onboarding.tenant_id
    tenant = runtime.tenants.get_tenant(tenant_id)
    if not tenant:
        fail_onboarding(db, runtime.publisher, onboarding.id, f"Can't fetch tenant {tenant_id}")
        return
    app_config = runtime.app_settings.get_app_config()
    if not app_config:
        fail_onboarding(db, runtime.publisher, onboarding.id, "Settings getAppConfig API call failed")
        return
    try:
        resources = tenant_resources(tenant)
    except ParameterError as exc:
        fail_onboarding(db, runtime.publisher, onboarding.id, str(exc))
        return
    tier = tenant.get("tier")
    if not tier:
        fail_onboarding(db, runtime.publisher, onboarding.id, f"Error retrieving tier for tenant {tenant_id}")
        return

    services = app_config.get("services") or {}
    priorities = path_priority(services)
    discovery = {}
    for service_name, service in services.items():
        try:
            parameters = app_stack_parameters(settings, tenant_id, service_name, service, tier, resources, priorities)
        except ParameterError as exc:
            fail_onboarding(db, runtime.publisher, onboarding.id, str(exc))
            return

        stack_name = app_stack_name(settings, tenant_id, service_name)
        logger.info("Creating app stack %s for service %s", stack_name, service_name)
        try:
            stack_id = _create_stack(runtime, stack_name, APP_TEMPLATE, settings.app_stack_topic_arn, parameters, tenant_id)
        except ClientError as exc:
            logger.error("cloudformation:CreateStack failed %s", error_message(exc))
            fail_onboarding(db, runtime.publisher, onboarding.id, error_message(exc))
            return
        add_stack(onboarding, stack_name, stack_id, False, IN_PROGRESS_STATUS)
        save_onboarding(db, onboarding)

        if not service.get("public"):
            discovery.update(service_discovery_entries(service_name, service))

    if discovery:
        key = f"tenants/{tenant_id}/ServiceDiscovery.env"
        try:
            runtime.s3.put_object(
                Bucket=settings.artifacts_bucket,
                Key=key,
                Body=render_env_file(discovery).encode("utf-8"),
            )
        except ClientError as exc:
            logger.error("Error putting service discovery file to S3")
            fail_onboarding(db, runtime.publisher, onboarding.id, error_message(exc))
            return
        logger.info("Wrote service discovery manifest %s", key)


def update_provisioned_tenant(db: Session, runtime: Runtime, onboarding: OnboardingModel, payload: TenantUpdate) -> List[str]:
    """Push sizing or subdomain changes to a tenant's existing stacks.

    Parameters the caller did not send keep their previous values.
    """
    stack_ids = []
    for stack in onboarding.stacks:
        if stack.base_stack:
            parameters = base_update_parameters(payload.subdomain, payload.billing_plan)
        else:
            parameters = app_update_parameters(payload.model_dump(include={"memory", "cpu", "min", "max"}))
        logger.info("Updating stack %s for tenant %s", stack.name, onboarding.tenant_id)
        try:
            resp = runtime.cloudformation.update_stack(
                StackName=stack.arn,
                UsePreviousTemplate=True,
                Parameters=parameters,
                Capabilities=STACK_CAPABILITIES,
            )
            stack_ids.append(resp["StackId"])
        except ClientError as exc:
            if is_no_updates_error(exc):
                logger.warning("cloudformation:UpdateStack %s", error_message(exc))
                stack_ids.append(stack.arn)
                continue
            logger.error("cloudformation:UpdateStack failed %s", error_message(exc))
            fail_onboarding(db, runtime.publisher, onboarding.id, error_message(exc))
            raise
    return stack_ids


def _update_control_plane(runtime: Runtime, stack_name: str, overrides: Dict[str, str]) -> Optional[str]:
    logger.info("Updating control plane stack %s", stack_name)
    try:
        resp = runtime.cloudformation.update_stack(
            StackName=stack_name,
            UsePreviousTemplate=True,
            Parameters=control_plane_parameters(overrides),
            Capabilities=STACK_CAPABILITIES,
        )
    except ClientError as exc:
        if is_no_updates_error(exc):
            logger.warning("cloudformation:UpdateStack %s", error_message(exc))
            return None
        logger.error("cloudformation:UpdateStack failed %s", error_message(exc))
        raise
    logger.info("Control plane stack id %s", resp["StackId"])
    return resp["StackId"]


def reset_domain_name(runtime: Runtime) -> Optional[str]:
    """Re-apply the configured domain name to the control plane stack."""
    values = runtime.app_settings.get_settings(CONTROL_PLANE_STACK_SETTING, DOMAIN_NAME_SETTING)
    stack_name = values.get(CONTROL_PLANE_STACK_SETTING)
    if not stack_name:
        raise ParameterError(f"Missing setting {CONTROL_PLANE_STACK_SETTING}", key=CONTROL_PLANE_STACK_SETTING)
    return _update_control_plane(runtime, stack_name, {"DomainName": values.get(DOMAIN_NAME_SETTING) or ""})


def update_app_config(runtime: Runtime) -> Optional[str]:
    """Push the current list of application services to the control plane stack."""
    stack_name = runtime.app_settings.get_secret(CONTROL_PLANE_STACK_SETTING)
    if not stack_name:
        raise ParameterError(f"Missing setting {CONTROL_PLANE_STACK_SETTING}", key=CONTROL_PLANE_STACK_SETTING)
    app_config = runtime.app_settings.get_app_config()
    if not app_config:
        raise ParameterError("Settings getAppConfig API call failed")
    services = app_config.get("services") or {}
    return _update_control_plane(runtime, stack_name, {"ApplicationServices": ",".join(services)})
