from types import SimpleNamespace

import pytest

from tenant_onboarding.onboarding.status import OnboardingStatus, can_transition
from tenant_onboarding.provisioning.lifecycle import (
    aggregate_status,
    base_stacks_complete,
    cloudformation_url,
    stack_complete,
    stack_failed,
    stacks_complete,
)


def _stack(status, base_stack=False):
    return SimpleNamespace(status=status, base_stack=base_stack)


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        ("created", "validating", True),
        ("validating", "validated", True),
        ("validated", "provisioning", True),
        ("provisioned", "succeeded", True),
        ("provisioning", "validated", False),
        ("deploying", "provisioned", False),
        ("validating", "failed", True),
        ("failed", "provisioning", False),
        ("succeeded", "failed", False),
    ],
)
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_failed_stack_statuses():
    assert stack_failed("CREATE_FAILED")
    assert stack_failed("ROLLBACK_COMPLETE")
    assert stack_failed("UPDATE_ROLLBACK_IN_PROGRESS")
    assert not stack_failed("CREATE_IN_PROGRESS")
    assert not stack_failed(None)


def test_complete_stack_statuses():
    assert stack_complete("CREATE_COMPLETE")
    assert stack_complete("UPDATE_COMPLETE")
    assert not stack_complete("DELETE_COMPLETE")


def test_base_stack_alone_is_still_provisioning():
    stacks = [_stack("CREATE_COMPLETE", base_stack=True)]
    assert base_stacks_complete(stacks)
    assert aggregate_status(stacks) == OnboardingStatus.provisioning


def test_all_stacks_complete_is_provisioned():
    stacks = [_stack("CREATE_COMPLETE", base_stack=True), _stack("CREATE_COMPLETE"), _stack("UPDATE_COMPLETE")]
    assert stacks_complete(stacks)
    assert aggregate_status(stacks) == OnboardingStatus.provisioned


def test_any_failed_stack_fails_the_onboarding():
    stacks = [_stack("CREATE_COMPLETE", base_stack=True), _stack("CREATE_COMPLETE"), _stack("CREATE_FAILED")]
    assert aggregate_status(stacks) == OnboardingStatus.failed


def test_in_progress_app_stack_is_provisioning():
    stacks = [_stack("CREATE_COMPLETE", base_stack=True), _stack("CREATE_IN_PROGRESS")]
    assert not stacks_complete(stacks)
    assert aggregate_status(stacks) == OnboardingStatus.provisioning


def test_no_stacks_is_never_complete():
    assert not stacks_complete([])
    assert not base_stacks_complete([_stack("CREATE_COMPLETE")])


def test_cloudformation_url_uses_stack_region():
    arn = "arn:aws:cloudformation:eu-west-1:123456789012:stack/sb-test-tenant-1234/abc"
    url = cloudformation_url(arn)
    assert url.startswith("https://eu-west-1.console.aws.amazon.com/cloudformation/home?region=eu-west-1")
    assert url.endswith(f"stackId={arn}")
    assert cloudformation_url("not-an-arn") is None
