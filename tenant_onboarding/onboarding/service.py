import logging
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from tenant_onboarding.core.errors import TenantAlreadyAssignedError
from tenant_onboarding.events.publisher import EventPublisher
from tenant_onboarding.events.schemas import OnboardingEvent
from tenant_onboarding.onboarding.models import OnboardingModel, OnboardingStackModel
from tenant_onboarding.onboarding.status import OnboardingStatus, can_transition

logger = logging.getLogger(__name__)

# First eight hex digits of a tenant id, as carried in pipeline names
SHORT_TENANT_ID = re.compile(r"[0-9a-f]{8}")


def _parse_id(value) -> Optional[str]:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        return None


def get_onboarding(db: Session, onboarding_id) -> Optional[OnboardingModel]:
    key = _parse_id(onboarding_id)
    if key is None:
        return None
    return db.get(OnboardingModel, key)


def get_onboarding_by_tenant_id(db: Session, tenant_id: str) -> Optional[OnboardingModel]:
    if not tenant_id:
        return None
    return db.query(OnboardingModel).filter(OnboardingModel.tenant_id == tenant_id).first()


def get_onboarding_by_tenant_prefix(db: Session, prefix: str) -> Optional[OnboardingModel]:
    """Newest onboarding whose tenant id starts with a pipeline name's short id."""
    if not prefix or not SHORT_TENANT_ID.fullmatch(prefix):
        logger.warning("Not a short tenant id %r", prefix)
        return None
    return (
        db.query(OnboardingModel)
        .filter(OnboardingModel.tenant_id.like(f"{prefix}%"))
        .order_by(OnboardingModel.created_at.desc())
        .first()
    )


def list_onboardings(db: Session) -> List[OnboardingModel]:
    return db.query(OnboardingModel).order_by(OnboardingModel.created_at.asc()).all()


def insert_onboarding(db: Session, request: dict) -> OnboardingModel:
    onboarding = OnboardingModel(status=OnboardingStatus.created.value, detail="", request=request)
    db.add(onboarding)
    db.commit()
    db.refresh(onboarding)
    return onboarding


def save_onboarding(db: Session, onboarding: OnboardingModel) -> OnboardingModel:
    # Always touch the row so the version check guards every write, stack changes included
    onboarding.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(onboarding)
    return onboarding


def update_status(db: Session, onboarding: OnboardingModel, status: OnboardingStatus, detail: Optional[str] = None) -> bool:
    if onboarding.status == status.value:
        return False
    if not can_transition(onboarding.status, status):
        logger.warning(
            "Ignoring onboarding %s status change from %s to %s",
            onboarding.id,
            onboarding.status,
            status.value,
        )
        return False
    logger.info("Onboarding %s status changing from %s to %s", onboarding.id, onboarding.status, status.value)
    onboarding.status = status.value
    if detail is not None:
        onboarding.detail = detail
    save_onboarding(db, onboarding)
    return True


def assign_tenant_id(onboarding: OnboardingModel, tenant_id: str) -> None:
    if onboarding.tenant_id and onboarding.tenant_id != tenant_id:
        raise TenantAlreadyAssignedError(f"Onboarding {onboarding.id} already has tenant {onboarding.tenant_id}")
    onboarding.tenant_id = tenant_id


def add_stack(onboarding: OnboardingModel, name: str, arn: str, base_stack: bool, status: str) -> OnboardingStackModel:
    stack = OnboardingStackModel(
        name=name,
        arn=arn,
        base_stack=base_stack,
        status=status,
        position=len(onboarding.stacks),
    )
    onboarding.stacks.append(stack)
    return stack


def find_stack(onboarding: OnboardingModel, stack_id: str) -> Optional[OnboardingStackModel]:
    for stack in onboarding.stacks:
        if stack.arn == stack_id:
            return stack
    return None


def fail_onboarding(db: Session, publisher: EventPublisher, onboarding_id, message: str) -> None:
    """Mark an onboarding failed and publish the failure notification."""
    logger.error("Failing onboarding %s: %s", onboarding_id, message)
    onboarding = get_onboarding(db, onboarding_id)
    if onboarding is not None:
        if onboarding.status != OnboardingStatus.failed.value:
            update_status(db, onboarding, OnboardingStatus.failed, detail=message)
    else:
        logger.error("Can't find onboarding record for %s", onboarding_id)
    publisher.publish(
        OnboardingEvent.FAILED.value,
        {"onboardingId": str(onboarding_id) if onboarding_id else None, "message": message},
    )
