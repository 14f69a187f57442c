from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Generator

from sqlalchemy.orm import Session

from tenant_onboarding.clients.aws import aws_client
from tenant_onboarding.clients.platform import SettingsClient, TenantClient
from tenant_onboarding.core.config import Settings, get_settings
from tenant_onboarding.db import SessionLocal
from tenant_onboarding.events.publisher import EventPublisher


@dataclass(frozen=True)
class Runtime:
    """Immutable startup configuration plus the collaborators every handler uses."""

    settings: Settings
    publisher: EventPublisher
    cloudformation: Any
    ecr: Any
    s3: Any
    route53: Any
    sqs: Any
    tenants: TenantClient
    app_settings: SettingsClient

    def close(self) -> None:
        self.tenants.close()
        self.app_settings.close()


def build_runtime(settings: Settings) -> Runtime:
    region = settings.aws_region
    return Runtime(
        settings=settings,
        publisher=EventPublisher(aws_client("events", region), settings.event_bus, settings.event_source),
        cloudformation=aws_client("cloudformation", region),
        ecr=aws_client("ecr", region),
        s3=aws_client("s3", region),
        route53=aws_client("route53", region),
        sqs=aws_client("sqs", region),
        tenants=TenantClient(settings.platform_api_url, timeout=settings.platform_api_timeout),
        app_settings=SettingsClient(settings.platform_api_url, timeout=settings.platform_api_timeout),
    )


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    return build_runtime(get_settings())


def close_runtime() -> None:
    # Nothing to close unless a request built the runtime
    if get_runtime.cache_info().currsize:
        get_runtime().close()
    get_runtime.cache_clear()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
