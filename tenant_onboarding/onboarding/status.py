from enum import Enum


class OnboardingStatus(str, Enum):
    created = "created"
    validating = "validating"
    validated = "validated"
    provisioning = "provisioning"
    provisioned = "provisioned"
    deploying = "deploying"
    succeeded = "succeeded"
    failed = "failed"


STATUS_ORDER = [
    OnboardingStatus.created,
    OnboardingStatus.validating,
    OnboardingStatus.validated,
    OnboardingStatus.provisioning,
    OnboardingStatus.provisioned,
    OnboardingStatus.deploying,
    OnboardingStatus.succeeded,
]
TERMINAL_STATUSES = {OnboardingStatus.succeeded, OnboardingStatus.failed}


def can_transition(current: str, new: str) -> bool:
    """Forward-only moves; ``failed`` is reachable from any non-terminal status."""
    current = OnboardingStatus(current)
    new = OnboardingStatus(new)
    if current in TERMINAL_STATUSES:
        return False
    if new == OnboardingStatus.failed:
        return True
    return STATUS_ORDER.index(new) > STATUS_ORDER.index(current)
