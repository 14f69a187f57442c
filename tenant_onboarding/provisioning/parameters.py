"""CloudFormation parameter assembly for tenant base and app stacks.

Everything in here is a pure function of the app config, the tenant and
the settings so the orchestrator can validate a full parameter set before
a single stack request is issued.
"""

import re
import secrets
import string
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tenant_onboarding.core.config import Settings
from tenant_onboarding.core.errors import ParameterError, TierNotFoundError

MAX_STACK_NAME_LENGTH = 128
BASE_TEMPLATE = "tenant-onboarding.yaml"
APP_TEMPLATE = "tenant-onboarding-app.yaml"
STACK_CAPABILITIES = ["CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]

BASE_STACK_PARAMETERS = (
    "Environment",
    "DomainName",
    "HostedZoneId",
    "SSLCertificateArn",
    "TenantId",
    "TenantSubDomain",
    "CidrPrefix",
    "Tier",
)

APP_STACK_PARAMETERS = (
    "Environment",
    "TenantId",
    "ServiceName",
    "ServiceResourceName",
    "ContainerRepository",
    "ContainerRepositoryTag",
    "ECSCluster",
    "PubliclyAddressable",
    "PublicPathRoute",
    "PublicPathRulePriority",
    "VPC",
    "SubnetPrivateA",
    "SubnetPrivateB",
    "ECSLoadBalancer",
    "ECSLoadBalancerHttpListener",
    "ECSLoadBalancerHttpsListener",
    "ECSSecurityGroup",
    "ContainerOS",
    "ClusterInstanceType",
    "TaskMemory",
    "TaskCPU",
    "MinTaskCount",
    "MaxTaskCount",
    "ContainerPort",
    "ContainerHealthCheckPath",
    "UseEFS",
    "MountPoint",
    "EncryptEFS",
    "EFSLifecyclePolicy",
    "UseFSx",
    "FSxWindowsMountDrive",
    "FSxDailyBackupTime",
    "FSxBackupRetention",
    "FSxThroughputCapacity",
    "FSxStorageCapacity",
    "FSxWeeklyMaintenanceTime",
    "UseRDS",
    "RDSInstanceClass",
    "RDSEngine",
    "RDSEngineVersion",
    "RDSParameterGroupFamily",
    "RDSMasterUsername",
    "RDSMasterPasswordParam",
    "RDSPort",
    "RDSDatabase",
    "RDSBootstrap",
    "MetricsStream",
    "EventBus",
)

# Partial tenant overrides accepted by the update API and the app stack parameter each one sets
SIZING_OVERRIDES = {
    "memory": "TaskMemory",
    "cpu": "TaskCPU",
    "min": "MinTaskCount",
    "max": "MaxTaskCount",
}

# Parameters of the control plane stack that owns the whole environment
CONTROL_PLANE_PARAMETERS = (
    "SaaSBoostBucket",
    "LambdaSourceFolder",
    "Environment",
    "AdminEmailAddress",
    "DomainName",
    "SSLCertificate",
    "PublicApiStage",
    "PrivateApiStage",
    "Version",
    "DeployActiveDirectory",
    "ADPasswordParam",
    "ApplicationServices",
)

REQUIRED_RESOURCES = {
    "VPC": "name",
    "PRIVATE_SUBNET_A": "name",
    "PRIVATE_SUBNET_B": "name",
    "ECS_CLUSTER": "name",
    "ECS_SECURITY_GROUP": "name",
    "LOAD_BALANCER": "arn",
    "HTTP_LISTENER": "arn",
}

Pairs = Iterable[Tuple[str, Any]]


def _value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_parameters(pairs: Pairs) -> List[Dict[str, str]]:
    params = []
    for key, value in pairs:
        value = _value(value)
        if value is None:
            raise ParameterError(f"CloudFormation template parameter {key} is NULL", key=key)
        params.append({"ParameterKey": key, "ParameterValue": value})
    return params


def previous_value(key: str) -> Dict[str, Any]:
    return {"ParameterKey": key, "UsePreviousValue": True}


def resource_name(service_name: str) -> str:
    # CloudFormation resource names only allow alphanumerics and dashes
    return re.sub(r"[^0-9A-Za-z-]", "", service_name).lower()


def upper_snake(value: str) -> str:
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    value = re.sub(r"[^0-9A-Za-z]+", "_", value)
    return value.strip("_").upper()


def tenant_short_id(tenant_id: str) -> str:
    return str(tenant_id)[:8]


def random_suffix(length: int = 12) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def base_stack_name(settings: Settings, tenant_id: str) -> str:
    return f"{settings.stack_prefix}{tenant_short_id(tenant_id)}"


def app_stack_name(settings: Settings, tenant_id: str, service_name: str, suffix: Optional[str] = None) -> str:
    # Mimic the name CloudFormation would generate for a nested stack
    name = (
        f"{settings.stack_prefix}{tenant_short_id(tenant_id)}-app-{resource_name(service_name)}-"
        f"{suffix or random_suffix()}"
    )
    return name[:MAX_STACK_NAME_LENGTH]


def base_stack_parameters(
    settings: Settings,
    app_config: dict,
    tenant: dict,
    tenant_id: Optional[str],
    cidr_prefix: Optional[str],
) -> List[Dict[str, str]]:
    return build_parameters(
        [
            ("Environment", settings.environment),
            ("DomainName", app_config.get("domainName") or ""),
            ("HostedZoneId", app_config.get("hostedZone") or ""),
            ("SSLCertificateArn", app_config.get("sslCertificate") or ""),
            ("TenantId", tenant_id),
            ("TenantSubDomain", tenant.get("subdomain") or ""),
            ("CidrPrefix", cidr_prefix),
            ("Tier", tenant.get("tier") or "default"),
        ]
    )


def path_priority(services: Dict[str, dict]) -> Dict[str, int]:
    """Listener rule priority per public service, longest path first.

    A path of ``/feature*`` must be evaluated before a catch-all ``/*`` or
    the catch-all would always match.  Equal lengths keep config order.
    """
    lengths = [
        (name, len(str(service.get("path") or "")))
        for name, service in services.items()
        if service.get("public")
    ]
    ordered = sorted(lengths, key=lambda item: item[1], reverse=True)
    return {name: priority for priority, (name, _) in enumerate(ordered, start=1)}


def tenant_resources(tenant: dict) -> Dict[str, str]:
    resources = tenant.get("resources") or {}
    found = {}
    for resource, attribute in REQUIRED_RESOURCES.items():
        value = (resources.get(resource) or {}).get(attribute)
        if not value:
            raise ParameterError(f"Missing required tenant environment resource {resource}", key=resource)
        found[resource] = value
    found["HTTPS_LISTENER"] = (resources.get("HTTPS_LISTENER") or {}).get("arn") or ""
    return found


def filesystem_parameters(filesystem: Optional[dict]) -> List[Tuple[str, Any]]:
    use_efs = False
    use_fsx = False
    mount_point = ""
    encrypt = False
    lifecycle = "NEVER"
    fsx = {}
    if filesystem:
        fs_type = filesystem.get("fileSystemType")
        mount_point = filesystem.get("mountPoint")
        if fs_type == "EFS":
            use_efs = True
            efs = filesystem.get("efs") or {}
            encrypt = efs.get("encryptAtRest")
            lifecycle = efs.get("filesystemLifecycle")
        elif fs_type == "FSX":
            use_fsx = True
            fsx = filesystem.get("fsx") or {}
    return [
        ("UseEFS", use_efs),
        ("MountPoint", mount_point),
        ("EncryptEFS", encrypt),
        ("EFSLifecyclePolicy", lifecycle),
        ("UseFSx", use_fsx),
        ("FSxWindowsMountDrive", fsx.get("windowsMountDrive", "") if use_fsx else ""),
        ("FSxDailyBackupTime", fsx.get("dailyBackupTime", "") if use_fsx else ""),
        ("FSxBackupRetention", fsx.get("backupRetentionDays", 7) if use_fsx else 7),
        ("FSxThroughputCapacity", fsx.get("throughputMbs", 0) if use_fsx else 0),
        ("FSxStorageCapacity", fsx.get("storageGb", 0) if use_fsx else 0),
        ("FSxWeeklyMaintenanceTime", fsx.get("weeklyMaintenanceTime", "") if use_fsx else ""),
    ]


def database_parameters(database: Optional[dict], settings: Settings) -> List[Tuple[str, Any]]:
    if not database:
        return [
            ("UseRDS", False),
            ("RDSInstanceClass", ""),
            ("RDSEngine", ""),
            ("RDSEngineVersion", ""),
            ("RDSParameterGroupFamily", ""),
            ("RDSMasterUsername", ""),
            ("RDSMasterPasswordParam", ""),
            ("RDSPort", -1),
            ("RDSDatabase", ""),
            ("RDSBootstrap", ""),
        ]
    return [
        ("UseRDS", True),
        ("RDSInstanceClass", database.get("instanceClass")),
        ("RDSEngine", database.get("engine")),
        ("RDSEngineVersion", database.get("version")),
        ("RDSParameterGroupFamily", database.get("family")),
        ("RDSMasterUsername", database.get("username")),
        ("RDSMasterPasswordParam", settings.master_password_param),
        ("RDSPort", database.get("port")),
        ("RDSDatabase", database.get("database")),
        ("RDSBootstrap", database.get("bootstrapFile") or ""),
    ]


def app_stack_parameters(
    settings: Settings,
    tenant_id: str,
    service_name: str,
    service: dict,
    tier: str,
    resources: Dict[str, str],
    priorities: Dict[str, int],
) -> List[Dict[str, str]]:
    tiers = service.get("tiers") or {}
    if tier not in tiers:
        raise TierNotFoundError(f"Missing tier '{tier}' definition for service {service_name}", key="Tier")
    tier_config = tiers[tier] or {}

    is_public = bool(service.get("public"))
    pairs = [
        ("Environment", settings.environment),
        ("TenantId", tenant_id),
        ("ServiceName", service_name),
        ("ServiceResourceName", resource_name(service_name)),
        ("ContainerRepository", service.get("containerRepo")),
        ("ContainerRepositoryTag", service.get("containerTag") or "latest"),
        ("ECSCluster", resources["ECS_CLUSTER"]),
        ("PubliclyAddressable", is_public),
        ("PublicPathRoute", service.get("path") if is_public else ""),
        ("PublicPathRulePriority", priorities.get(service_name) if is_public else 0),
        ("VPC", resources["VPC"]),
        ("SubnetPrivateA", resources["PRIVATE_SUBNET_A"]),
        ("SubnetPrivateB", resources["PRIVATE_SUBNET_B"]),
        ("ECSLoadBalancer", resources["LOAD_BALANCER"]),
        ("ECSLoadBalancerHttpListener", resources["HTTP_LISTENER"]),
        ("ECSLoadBalancerHttpsListener", resources["HTTPS_LISTENER"]),
        ("ECSSecurityGroup", resources["ECS_SECURITY_GROUP"]),
        # FindInMap keys can't contain underscores
        ("ContainerOS", (service.get("operatingSystem") or "").replace("_", "")),
        ("ClusterInstanceType", tier_config.get("instanceType")),
        ("TaskMemory", tier_config.get("memory")),
        ("TaskCPU", tier_config.get("cpu")),
        ("MinTaskCount", tier_config.get("min")),
        ("MaxTaskCount", tier_config.get("max")),
        ("ContainerPort", service.get("containerPort")),
        ("ContainerHealthCheckPath", service.get("healthCheckUrl")),
    ]
    pairs += filesystem_parameters(tier_config.get("filesystem"))
    pairs += database_parameters(tier_config.get("database"), settings)
    pairs += [
        ("MetricsStream", ""),
        ("EventBus", settings.event_bus),
    ]
    return build_parameters(pairs)


def service_discovery_entries(service_name: str, service: dict) -> Dict[str, str]:
    env_name = upper_snake(service_name)
    return {
        f"SERVICE_{env_name}_HOST": f"{resource_name(service_name)}.local",
        f"SERVICE_{env_name}_PORT": str(service.get("containerPort")),
    }


def render_env_file(entries: Dict[str, str]) -> str:
    return "".join(f"{key}={value}\n" for key, value in entries.items())


def base_update_parameters(subdomain: Optional[str], billing_plan: Optional[str]) -> List[Dict[str, Any]]:
    params = []
    for key in BASE_STACK_PARAMETERS:
        if key == "TenantSubDomain":
            # Always sent: a blank subdomain removes the tenant's DNS record
            params.append({"ParameterKey": key, "ParameterValue": subdomain or ""})
        else:
            params.append(previous_value(key))
    if billing_plan is not None:
        params.append({"ParameterKey": "BillingPlan", "ParameterValue": billing_plan})
    return params


def app_update_parameters(overrides: Dict[str, Optional[int]]) -> List[Dict[str, Any]]:
    values = {
        SIZING_OVERRIDES[field]: value
        for field, value in overrides.items()
        if field in SIZING_OVERRIDES and value is not None
    }
    return [
        {"ParameterKey": key, "ParameterValue": str(values[key])} if key in values else previous_value(key)
        for key in APP_STACK_PARAMETERS
    ]


def control_plane_parameters(overrides: Dict[str, str]) -> List[Dict[str, Any]]:
    """Every control plane parameter, keeping previous values except ``overrides``."""
    return [
        {"ParameterKey": key, "ParameterValue": overrides[key]} if key in overrides else previous_value(key)
        for key in CONTROL_PLANE_PARAMETERS
    ]
