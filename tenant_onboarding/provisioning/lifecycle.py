"""Pure functions over CloudFormation stack lifecycle text.

The onboarding record keeps its stacks as an append-only list; the
aggregate onboarding status is always recomputed from the full list
rather than patched incrementally.
"""

from typing import Iterable, Optional, Protocol

from tenant_onboarding.onboarding.status import OnboardingStatus

COMPLETE_STATUSES = {"CREATE_COMPLETE", "UPDATE_COMPLETE"}
IN_PROGRESS_STATUS = "CREATE_IN_PROGRESS"


class StackLike(Protocol):
    status: str
    base_stack: bool


def stack_complete(status: Optional[str]) -> bool:
    return status in COMPLETE_STATUSES


def stack_failed(status: Optional[str]) -> bool:
    if not status:
        return False
    return status.endswith("_FAILED") or "ROLLBACK" in status


def base_stacks_complete(stacks: Iterable[StackLike]) -> bool:
    base = [stack for stack in stacks if stack.base_stack]
    return bool(base) and all(stack_complete(stack.status) for stack in base)


def stacks_complete(stacks: Iterable[StackLike]) -> bool:
    stacks = list(stacks)
    return bool(stacks) and all(stack_complete(stack.status) for stack in stacks)


def aggregate_status(stacks: Iterable[StackLike]) -> OnboardingStatus:
    stacks = list(stacks)
    if any(stack_failed(stack.status) for stack in stacks):
        return OnboardingStatus.failed
    # Base stacks alone never make a tenant provisioned; app stacks follow.
    app_stacks = [stack for stack in stacks if not stack.base_stack]
    if app_stacks and stacks_complete(stacks):
        return OnboardingStatus.provisioned
    return OnboardingStatus.provisioning


def cloudformation_url(arn: Optional[str]) -> Optional[str]:
    if not arn:
        return None
    parts = arn.split(":")
    if len(parts) <= 4:
        return None
    region = parts[3]
    return (
        f"https://{region}.console.aws.amazon.com/cloudformation/home?region={region}"
        f"#/stacks/stackinfo?filteringText=&filteringStatus=active&viewNested=true&hideStacks=false&stackId={arn}"
    )
