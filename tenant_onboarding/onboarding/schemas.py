from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OnboardingRequest(BaseModel):
    name: Optional[str] = None
    subdomain: Optional[str] = None
    tier: Optional[str] = "default"


class Stack(BaseModel):
    name: str
    arn: str
    base_stack: bool
    status: str
    complete: bool
    failed: bool = False
    cloudformation_url: Optional[str] = None


class Onboarding(BaseModel):
    id: str
    status: str
    detail: str = ""
    request: Optional[OnboardingRequest] = None
    tenant_id: Optional[str] = None
    zip_file_url: Optional[str] = None
    stacks: List[Stack] = Field(default_factory=list)
    created: Optional[datetime] = None
    modified: Optional[datetime] = None


class OnboardingUpdate(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    detail: Optional[str] = None
    tenant_id: Optional[str] = None
    zip_file_url: Optional[str] = None


class TenantUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    memory: Optional[int] = None
    cpu: Optional[int] = None
    min: Optional[int] = None
    max: Optional[int] = None
    billing_plan: Optional[str] = Field(default=None, alias="planId")
    subdomain: Optional[str] = None


class TenantUpdateResponse(BaseModel):
    tenant_id: str
    stack_ids: List[str]


class ControlPlaneUpdateResponse(BaseModel):
    stack_id: Optional[str] = None
