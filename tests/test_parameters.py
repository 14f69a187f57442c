import pytest

from tenant_onboarding.core.errors import ParameterError, TierNotFoundError
from tenant_onboarding.provisioning.parameters import (
    APP_STACK_PARAMETERS,
    BASE_STACK_PARAMETERS,
    MAX_STACK_NAME_LENGTH,
    app_stack_name,
    app_stack_parameters,
    app_update_parameters,
    base_stack_name,
    base_stack_parameters,
    base_update_parameters,
    build_parameters,
    path_priority,
    render_env_file,
    service_discovery_entries,
    tenant_resources,
)


def _as_dict(params):
    return {param["ParameterKey"]: param.get("ParameterValue") for param in params}


def test_path_priority_longest_path_first():
    services = {
        "catchall": {"public": True, "path": "/*"},
        "a": {"public": True, "path": "/a"},
        "app": {"public": True, "path": "/app/b"},
        "worker": {"public": False, "path": "/ignored/path"},
    }
    assert path_priority(services) == {"app": 1, "catchall": 2, "a": 3}


def test_build_parameters_renders_booleans_and_numbers():
    params = build_parameters([("UseEFS", True), ("UseFSx", False), ("RDSPort", -1)])
    assert _as_dict(params) == {"UseEFS": "true", "UseFSx": "false", "RDSPort": "-1"}


def test_build_parameters_rejects_null_values():
    with pytest.raises(ParameterError) as exc:
        build_parameters([("Environment", "test"), ("TenantId", None)])
    assert exc.value.key == "TenantId"
    assert "TenantId" in str(exc.value)


def test_stack_names(settings, tenant_id):
    assert base_stack_name(settings, tenant_id) == f"sb-test-tenant-{tenant_id[:8]}"
    name = app_stack_name(settings, tenant_id, "Order Service", suffix="ABCDEF123456")
    assert name == f"sb-test-tenant-{tenant_id[:8]}-app-orderservice-ABCDEF123456"


def test_app_stack_name_random_suffix(settings, tenant_id):
    name = app_stack_name(settings, tenant_id, "web")
    suffix = name.rsplit("-", 1)[1]
    assert len(suffix) == 12
    assert suffix.upper() == suffix


def test_app_stack_name_is_truncated(settings, tenant_id):
    name = app_stack_name(settings, tenant_id, "s" * 200)
    assert len(name) == MAX_STACK_NAME_LENGTH


def test_base_stack_parameters(settings, app_config, tenant, tenant_id):
    params = base_stack_parameters(settings, app_config, tenant, tenant_id, "10.2")
    assert [param["ParameterKey"] for param in params] == list(BASE_STACK_PARAMETERS)
    values = _as_dict(params)
    assert values["CidrPrefix"] == "10.2"
    assert values["TenantSubDomain"] == "acme"
    assert values["HostedZoneId"] == "Z0000000000"


def test_base_stack_parameters_need_a_cidr(settings, app_config, tenant, tenant_id):
    with pytest.raises(ParameterError):
        base_stack_parameters(settings, app_config, tenant, tenant_id, None)


def test_app_stack_parameters(settings, app_config, tenant, tenant_id):
    services = app_config["services"]
    resources = tenant_resources(tenant)
    params = app_stack_parameters(
        settings, tenant_id, "web", services["web"], "default", resources, path_priority(services)
    )

    assert [param["ParameterKey"] for param in params] == list(APP_STACK_PARAMETERS)
    values = _as_dict(params)
    assert values["PubliclyAddressable"] == "true"
    assert values["PublicPathRoute"] == "/*"
    assert values["PublicPathRulePriority"] == "1"
    assert values["ContainerRepositoryTag"] == "v1"
    assert values["TaskMemory"] == "1024"
    assert values["UseRDS"] == "false"
    assert values["RDSPort"] == "-1"
    assert values["ECSLoadBalancerHttpsListener"] == ""


def test_app_stack_parameters_with_database(settings, app_config, tenant, tenant_id):
    service = app_config["services"]["Order Service"]
    service["tiers"]["default"]["database"] = {
        "instanceClass": "db.t3.micro",
        "engine": "postgres",
        "version": "15",
        "family": "postgres15",
        "username": "admin",
        "port": 5432,
        "database": "orders",
    }
    params = app_stack_parameters(
        settings, tenant_id, "Order Service", service, "default", tenant_resources(tenant), {}
    )
    values = _as_dict(params)
    assert values["UseRDS"] == "true"
    assert values["RDSMasterPasswordParam"] == "/saas-boost/test/DB_MASTER_PASSWORD"
    assert values["PublicPathRulePriority"] == "0"
    assert values["ContainerRepositoryTag"] == "latest"


def test_missing_tier_is_an_error(settings, app_config, tenant, tenant_id):
    with pytest.raises(TierNotFoundError):
        app_stack_parameters(
            settings, tenant_id, "web", app_config["services"]["web"], "gold", tenant_resources(tenant), {}
        )


def test_tenant_resources_require_network(tenant):
    del tenant["resources"]["VPC"]
    with pytest.raises(ParameterError) as exc:
        tenant_resources(tenant)
    assert exc.value.key == "VPC"


def test_service_discovery_env_file():
    entries = service_discovery_entries("Order Service", {"containerPort": 8080})
    assert render_env_file(entries) == (
        "SERVICE_ORDER_SERVICE_HOST=orderservice.local\nSERVICE_ORDER_SERVICE_PORT=8080\n"
    )


def test_base_update_keeps_previous_values():
    params = base_update_parameters("", None)
    values = {param["ParameterKey"]: param for param in params}
    assert values["TenantSubDomain"]["ParameterValue"] == ""
    assert values["Environment"] == {"ParameterKey": "Environment", "UsePreviousValue": True}
    assert "BillingPlan" not in values

    params = base_update_parameters("acme", "plan-gold")
    values = {param["ParameterKey"]: param for param in params}
    assert values["BillingPlan"]["ParameterValue"] == "plan-gold"


def test_app_update_overrides_only_sizing():
    params = app_update_parameters({"memory": 2048, "cpu": None, "min": 2, "max": None})
    values = {param["ParameterKey"]: param for param in params}
    assert values["TaskMemory"]["ParameterValue"] == "2048"
    assert values["MinTaskCount"]["ParameterValue"] == "2"
    assert values["TaskCPU"]["UsePreviousValue"] is True
    assert values["ContainerRepository"]["UsePreviousValue"] is True
    assert len(params) == len(APP_STACK_PARAMETERS)
