from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

TENANT_STATUS_CHANGED = "Tenant Onboarding Status Changed"
WORKLOAD_READY_FOR_DEPLOYMENT = "Workload Ready For Deployment"


class OnboardingEvent(str, Enum):
    INITIATED = "Onboarding Initiated"
    VALIDATED = "Onboarding Validated"
    TENANT_ASSIGNED = "Onboarding Tenant Assigned"
    STACK_STATUS_CHANGED = "Onboarding Stack Status Changed"
    BASE_PROVISIONED = "Onboarding Base Provisioned"
    PROVISIONED = "Onboarding Provisioned"
    DEPLOYMENT_PIPELINE_CHANGED = "Onboarding Deployment Pipeline Changed"
    DEPLOYED = "Onboarding Deployed"
    FAILED = "Onboarding Failed"

    @classmethod
    def from_detail_type(cls, detail_type: Optional[str]) -> Optional["OnboardingEvent"]:
        for event in cls:
            if event.value == detail_type:
                return event
        return None


class EventEnvelope(BaseModel):
    """Event bus envelope; ``id`` doubles as the correlation id."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    source: str = ""
    detail_type: str = Field(default="", alias="detail-type")
    detail: Dict[str, Any] = Field(default_factory=dict)

    @property
    def onboarding_id(self) -> Optional[str]:
        value = self.detail.get("onboardingId")
        return str(value) if value else None

    def has(self, *keys: str) -> bool:
        return all(self.detail.get(key) not in (None, "") for key in keys)
