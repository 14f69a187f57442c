import logging
from typing import List, Optional

from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tenant_onboarding.clients.aws import error_message
from tenant_onboarding.core.deps import Runtime, get_db, get_runtime
from tenant_onboarding.core.errors import ParameterError
from tenant_onboarding.events.schemas import OnboardingEvent
from tenant_onboarding.onboarding.models import OnboardingModel
from tenant_onboarding.onboarding.schemas import (
    ControlPlaneUpdateResponse,
    Onboarding,
    OnboardingRequest,
    OnboardingUpdate,
    Stack,
    TenantUpdate,
    TenantUpdateResponse,
)
from tenant_onboarding.onboarding.service import (
    get_onboarding,
    get_onboarding_by_tenant_id,
    insert_onboarding,
    list_onboardings,
    save_onboarding,
    update_status,
)
from tenant_onboarding.onboarding.status import OnboardingStatus
from tenant_onboarding.provisioning.service import reset_domain_name, update_app_config, update_provisioned_tenant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def _to_schema(row: OnboardingModel) -> Onboarding:
    return Onboarding(
        id=row.id,
        status=row.status,
        detail=row.detail or "",
        request=OnboardingRequest(**row.request) if row.request else None,
        tenant_id=row.tenant_id,
        zip_file_url=row.zip_file_url,
        stacks=[
            Stack(
                name=stack.name,
                arn=stack.arn,
                base_stack=stack.base_stack,
                status=stack.status,
                complete=stack.complete,
                failed=stack.failed,
                cloudformation_url=stack.cloudformation_url,
            )
            for stack in row.stacks
        ],
        created=row.created_at,
        modified=row.updated_at,
    )


def _ensure_onboarding(db: Session, onboarding_id: str) -> OnboardingModel:
    onboarding = get_onboarding(db, onboarding_id)
    if not onboarding:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Onboarding not found")
    return onboarding


@router.get("", response_model=List[Onboarding])
def list_onboarding(tenantId: Optional[str] = None, db: Session = Depends(get_db)):
    if tenantId and tenantId.strip():
        row = get_onboarding_by_tenant_id(db, tenantId.strip())
        rows = [row] if row else []
    else:
        rows = list_onboardings(db)
    return [_to_schema(row) for row in rows]


@router.get("/{onboarding_id}", response_model=Onboarding)
def get_onboarding_record(onboarding_id: str, db: Session = Depends(get_db)):
    return _to_schema(_ensure_onboarding(db, onboarding_id))


@router.post("", response_model=Onboarding)
def create_onboarding(
    payload: OnboardingRequest,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    if not payload.name or not payload.name.strip():
        return _message(status.HTTP_400_BAD_REQUEST, "Tenant name is required.")

    request = payload.model_dump()
    request["name"] = payload.name.strip()
    request["tier"] = payload.tier or "default"
    logger.info("Saving new onboarding request")
    onboarding = insert_onboarding(db, request)

    # The onboarding id is part of the object key, so the record has to exist first
    key = f"temp/{onboarding.id}.zip"
    onboarding.zip_file_url = runtime.s3.generate_presigned_url(
        "put_object",
        Params={"Bucket": runtime.settings.artifacts_bucket, "Key": key},
        ExpiresIn=runtime.settings.upload_url_expires_seconds,
    )
    save_onboarding(db, onboarding)
    logger.info("Updated onboarding request with S3 URL")

    runtime.publisher.publish(OnboardingEvent.INITIATED.value, {"onboardingId": onboarding.id})
    return _to_schema(onboarding)


@router.put("/{onboarding_id}", response_model=Onboarding)
def update_onboarding(onboarding_id: str, payload: OnboardingUpdate, db: Session = Depends(get_db)):
    if not payload.id or payload.id != onboarding_id:
        logger.error("Can't update onboarding %s at resource %s", payload.id, onboarding_id)
        return _message(status.HTTP_400_BAD_REQUEST, "Request body must include id")
    onboarding = _ensure_onboarding(db, onboarding_id)
    if payload.tenant_id and onboarding.tenant_id and payload.tenant_id != onboarding.tenant_id:
        return _message(status.HTTP_400_BAD_REQUEST, "Tenant id can't be changed once assigned")

    if payload.tenant_id and not onboarding.tenant_id:
        onboarding.tenant_id = payload.tenant_id
    if payload.zip_file_url is not None:
        onboarding.zip_file_url = payload.zip_file_url
    if payload.detail is not None:
        onboarding.detail = payload.detail
    if payload.status and payload.status != onboarding.status:
        try:
            new_status = OnboardingStatus(payload.status)
        except ValueError:
            return _message(status.HTTP_400_BAD_REQUEST, f"Invalid status {payload.status}")
        if not update_status(db, onboarding, new_status):
            return _message(
                status.HTTP_400_BAD_REQUEST,
                f"Can't change status from {onboarding.status} to {new_status.value}",
            )
    save_onboarding(db, onboarding)
    return _to_schema(onboarding)


@router.delete("/{onboarding_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_onboarding(onboarding_id: str, db: Session = Depends(get_db)):
    # Onboarding records are kept as the audit trail of a tenant's provisioning
    _ensure_onboarding(db, onboarding_id)
    return None


@router.put("/tenants/{tenant_id}", response_model=TenantUpdateResponse)
def update_tenant(
    tenant_id: str,
    payload: TenantUpdate,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    if payload.id and payload.id != tenant_id:
        return _message(status.HTTP_400_BAD_REQUEST, "Request body id must match tenant id")
    onboarding = get_onboarding_by_tenant_id(db, tenant_id)
    if onboarding is None:
        return _message(status.HTTP_400_BAD_REQUEST, f"No onboarding record for tenant id {tenant_id}")
    try:
        stack_ids = update_provisioned_tenant(db, runtime, onboarding, payload)
    except ClientError as exc:
        return _message(status.HTTP_400_BAD_REQUEST, error_message(exc))
    return TenantUpdateResponse(tenant_id=onboarding.tenant_id, stack_ids=stack_ids)


@router.post("/domain/reset", response_model=ControlPlaneUpdateResponse)
def reset_domain(runtime: Runtime = Depends(get_runtime)):
    try:
        stack_id = reset_domain_name(runtime)
    except ParameterError as exc:
        return _message(status.HTTP_400_BAD_REQUEST, str(exc))
    except ClientError as exc:
        return _message(status.HTTP_400_BAD_REQUEST, error_message(exc))
    return ControlPlaneUpdateResponse(stack_id=stack_id)


@router.post("/app-config", response_model=ControlPlaneUpdateResponse)
def apply_app_config(runtime: Runtime = Depends(get_runtime)):
    try:
        stack_id = update_app_config(runtime)
    except ParameterError as exc:
        return _message(status.HTTP_400_BAD_REQUEST, str(exc))
    except ClientError as exc:
        return _message(status.HTTP_400_BAD_REQUEST, error_message(exc))
    return ControlPlaneUpdateResponse(stack_id=stack_id)
