from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tenant_onboarding.core.errors import ConfigurationError

APP_NAME = "Tenant Onboarding Service"
DEFAULT_EVENT_SOURCE = "saas-boost"
PIPELINE_EVENT_SOURCE = "aws.codepipeline"

REQUIRED_SETTINGS = (
    "environment",
    "event_bus",
    "artifacts_bucket",
    "validation_queue_url",
    "validation_dlq_url",
    "base_stack_topic_arn",
    "app_stack_topic_arn",
    "platform_api_url",
)


class Settings(BaseSettings):
    """Service settings, read once from the environment variables the stack sets."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True, case_sensitive=True)

    environment: str = Field(default="", validation_alias="SAAS_BOOST_ENV")
    event_bus: str = Field(default="", validation_alias="SAAS_BOOST_EVENT_BUS")
    event_source: str = Field(default=DEFAULT_EVENT_SOURCE, validation_alias="ONBOARDING_EVENT_SOURCE")
    artifacts_bucket: str = Field(default="", validation_alias="SAAS_BOOST_BUCKET")
    validation_queue_url: str = Field(default="", validation_alias="ONBOARDING_VALIDATION_QUEUE")
    validation_dlq_url: str = Field(default="", validation_alias="ONBOARDING_VALIDATION_DLQ")
    base_stack_topic_arn: str = Field(default="", validation_alias="ONBOARDING_STACK_SNS")
    app_stack_topic_arn: str = Field(default="", validation_alias="ONBOARDING_APP_STACK_SNS")
    platform_api_url: str = Field(default="", validation_alias="PLATFORM_API_URL")
    platform_api_timeout: float = Field(default=10.0, validation_alias="PLATFORM_API_TIMEOUT")
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    upload_url_expires_seconds: int = Field(default=15 * 60, validation_alias="UPLOAD_URL_EXPIRES_SECONDS")
    db_master_password_param: Optional[str] = Field(default=None, validation_alias="DB_MASTER_PASSWORD_PARAM")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()

    def check_required(self) -> "Settings":
        blank = [name for name in REQUIRED_SETTINGS if not str(getattr(self, name) or "").strip()]
        if blank:
            raise ConfigurationError(f"Missing required settings: {', '.join(blank)}")
        return self

    @property
    def stack_prefix(self) -> str:
        return f"sb-{self.environment}-tenant-"

    @property
    def master_password_param(self) -> str:
        return self.db_master_password_param or f"/saas-boost/{self.environment}/DB_MASTER_PASSWORD"

    def template_url(self, template: str) -> str:
        return f"https://{self.artifacts_bucket}.s3.amazonaws.com/{template}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env().check_required()
