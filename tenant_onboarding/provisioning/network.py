import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from tenant_onboarding.core.errors import AddressBlockUnavailableError
from tenant_onboarding.provisioning.models import AddressBlockModel

logger = logging.getLogger(__name__)


def seed_address_blocks(db: Session, count: int = 255) -> int:
    existing = {row.cidr_block for row in db.query(AddressBlockModel.cidr_block).all()}
    added = 0
    # 10.0.0.0/16 belongs to the control plane VPC
    for octet in range(1, count + 1):
        cidr = f"10.{octet}.0.0/16"
        if cidr not in existing:
            db.add(AddressBlockModel(cidr_block=cidr))
            added += 1
    db.commit()
    if added:
        logger.info("Seeded %d address blocks", added)
    return added


def _free_blocks(db: Session):
    return (
        db.query(AddressBlockModel)
        .filter(AddressBlockModel.tenant_id.is_(None))
        .order_by(AddressBlockModel.id.asc())
    )


def available_address_block(db: Session) -> bool:
    return _free_blocks(db).first() is not None


def get_address_block(db: Session, tenant_id: str) -> Optional[str]:
    row = db.query(AddressBlockModel).filter(AddressBlockModel.tenant_id == tenant_id).first()
    return row.cidr_block if row else None


def assign_address_block(db: Session, tenant_id: str) -> str:
    existing = get_address_block(db, tenant_id)
    if existing:
        return existing
    row = _free_blocks(db).with_for_update(skip_locked=True).first()
    if row is None:
        raise AddressBlockUnavailableError("No CIDR blocks available for new VPC")
    row.tenant_id = tenant_id
    row.assigned_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("Assigned %s to tenant %s", row.cidr_block, tenant_id)
    return row.cidr_block


def cidr_prefix(cidr_block: str) -> str:
    """First two octets, e.g. ``10.12`` for ``10.12.0.0/16``."""
    return ".".join(cidr_block.split(".")[:2])
