"""Shared fixtures: an in-memory SQLite database, a Runtime wired with fakes,
sample tenant and app config data, and a FastAPI TestClient.
"""

import os
import uuid
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

# Set before the application modules build their engine and boto3 clients
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_onboarding.clients.platform import SettingsClient, TenantClient
from tenant_onboarding.core.config import Settings
from tenant_onboarding.core.deps import Runtime, get_db, get_runtime
from tenant_onboarding.db import Base
from tenant_onboarding.main import app
from tenant_onboarding.onboarding.models import OnboardingModel
from tenant_onboarding.onboarding.service import add_stack
from tenant_onboarding.onboarding.status import OnboardingStatus
from tenant_onboarding.provisioning.network import seed_address_blocks

from tests.factories import RecordingPublisher

REGION = "us-east-1"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        environment="test",
        event_bus="sb-test-bus",
        artifacts_bucket="sb-test-artifacts",
        validation_queue_url="https://sqs.us-east-1.amazonaws.com/123456789012/validation",
        validation_dlq_url="https://sqs.us-east-1.amazonaws.com/123456789012/validation-dlq",
        base_stack_topic_arn="arn:aws:sns:us-east-1:123456789012:onboarding-base",
        app_stack_topic_arn="arn:aws:sns:us-east-1:123456789012:onboarding-app",
        platform_api_url="http://platform.local",
        aws_region=REGION,
    )


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def address_blocks(db):
    seed_address_blocks(db, count=3)


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def tenant_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture()
def app_config() -> Dict[str, Any]:
    tier = {"instanceType": "t3.medium", "memory": 1024, "cpu": 512, "min": 1, "max": 2}
    return {
        "domainName": "example.com",
        "hostedZone": "Z0000000000",
        "sslCertificate": "arn:aws:acm:us-east-1:123456789012:certificate/abc",
        "services": {
            "web": {
                "public": True,
                "path": "/*",
                "containerRepo": "web",
                "containerTag": "v1",
                "containerPort": 80,
                "healthCheckUrl": "/health",
                "operatingSystem": "LINUX",
                "tiers": {"default": dict(tier)},
            },
            "Order Service": {
                "public": False,
                "containerRepo": "orders",
                "containerPort": 8080,
                "healthCheckUrl": "/ping",
                "operatingSystem": "LINUX",
                "tiers": {"default": dict(tier)},
            },
        },
    }


@pytest.fixture()
def tenant(tenant_id) -> Dict[str, Any]:
    return {
        "id": tenant_id,
        "name": "Acme",
        "subdomain": "acme",
        "tier": "default",
        "resources": {
            "VPC": {"name": "vpc-0123"},
            "PRIVATE_SUBNET_A": {"name": "subnet-a"},
            "PRIVATE_SUBNET_B": {"name": "subnet-b"},
            "ECS_CLUSTER": {"name": "tenant-cluster"},
            "ECS_SECURITY_GROUP": {"name": "sg-0123"},
            "LOAD_BALANCER": {"arn": "arn:aws:elasticloadbalancing:us-east-1:123456789012:loadbalancer/app/lb"},
            "HTTP_LISTENER": {"arn": "arn:aws:elasticloadbalancing:us-east-1:123456789012:listener/app/lb/http"},
        },
    }


@pytest.fixture()
def runtime(settings, publisher, app_config) -> Runtime:
    app_settings = MagicMock(spec=SettingsClient)
    app_settings.get_app_config.return_value = app_config
    app_settings.check_quotas.return_value = {"passed": True, "message": ""}
    sqs = MagicMock()
    sqs.send_message_batch.return_value = {"Successful": [], "Failed": []}
    return Runtime(
        settings=settings,
        publisher=publisher,
        cloudformation=MagicMock(),
        ecr=MagicMock(),
        s3=MagicMock(),
        route53=MagicMock(),
        sqs=sqs,
        tenants=MagicMock(spec=TenantClient),
        app_settings=app_settings,
    )


@pytest.fixture()
def make_onboarding(db):
    def _make(status=OnboardingStatus.created, tenant_id=None, request=None, stacks=()):
        onboarding = OnboardingModel(
            status=status.value,
            detail="",
            request=request if request is not None else {"name": "Acme", "subdomain": "acme", "tier": "default"},
            tenant_id=tenant_id,
        )
        for name, arn, base_stack, stack_status in stacks:
            add_stack(onboarding, name, arn, base_stack, stack_status)
        db.add(onboarding)
        db.commit()
        db.refresh(onboarding)
        return onboarding

    return _make


@pytest.fixture()
def client(db, runtime):
    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_runtime] = lambda: runtime
    yield TestClient(app)
    app.dependency_overrides.clear()
