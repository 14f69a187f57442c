import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from tenant_onboarding.db import Base
from tenant_onboarding.onboarding.status import OnboardingStatus
from tenant_onboarding.provisioning.lifecycle import cloudformation_url, stack_complete, stack_failed


class OnboardingModel(Base):
    __tablename__ = "onboarding"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String, nullable=False, default=OnboardingStatus.created.value)
    detail = Column(String, nullable=False, default="")
    request = Column(JSON, nullable=True)
    tenant_id = Column(String(36), nullable=True, unique=True, index=True)
    zip_file_url = Column(String, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    stacks = relationship(
        "OnboardingStackModel",
        order_by="OnboardingStackModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Conditional UPDATE ... WHERE version = :expected; a lost race raises StaleDataError
    __mapper_args__ = {"version_id_col": version}


class OnboardingStackModel(Base):
    __tablename__ = "onboarding_stacks"

    id = Column(Integer, primary_key=True, index=True)
    onboarding_id = Column(String(36), ForeignKey("onboarding.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    arn = Column(String, nullable=False, index=True)
    base_stack = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def complete(self) -> bool:
        return stack_complete(self.status)

    @property
    def failed(self) -> bool:
        return stack_failed(self.status)

    @property
    def cloudformation_url(self) -> str | None:
        return cloudformation_url(self.arn)
