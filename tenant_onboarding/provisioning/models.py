from sqlalchemy import Column, DateTime, Integer, String, func

from tenant_onboarding.db import Base


class AddressBlockModel(Base):
    __tablename__ = "address_blocks"

    id = Column(Integer, primary_key=True, index=True)
    cidr_block = Column(String, nullable=False, unique=True)
    tenant_id = Column(String(36), nullable=True, unique=True, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
