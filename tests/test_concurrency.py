import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from tenant_onboarding.onboarding.service import get_onboarding, save_onboarding, update_status
from tenant_onboarding.onboarding.status import OnboardingStatus

from tests.factories import stack_arn


@pytest.fixture()
def sessions(engine):
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    first, second = factory(), factory()
    try:
        yield first, second
    finally:
        second.close()
        first.close()


@pytest.fixture()
def provisioning(make_onboarding, tenant_id):
    return make_onboarding(
        OnboardingStatus.provisioning,
        tenant_id=tenant_id,
        stacks=[("base", stack_arn("base"), True, "CREATE_IN_PROGRESS")],
    )


def test_second_writer_of_a_stack_loses(sessions, provisioning):
    first, second = sessions
    winner = get_onboarding(first, provisioning.id)
    loser = get_onboarding(second, provisioning.id)

    winner.stacks[0].status = "CREATE_COMPLETE"
    save_onboarding(first, winner)
    loser.stacks[0].status = "CREATE_FAILED"

    with pytest.raises(StaleDataError):
        save_onboarding(second, loser)
    second.rollback()

    assert get_onboarding(second, provisioning.id).stacks[0].status == "CREATE_COMPLETE"


def test_status_change_on_stale_copy_is_rejected(sessions, provisioning):
    first, second = sessions
    winner = get_onboarding(first, provisioning.id)
    loser = get_onboarding(second, provisioning.id)

    update_status(first, winner, OnboardingStatus.provisioned)

    with pytest.raises(StaleDataError):
        update_status(second, loser, OnboardingStatus.failed, detail="stack failed")
    second.rollback()

    reloaded = get_onboarding(second, provisioning.id)
    assert reloaded.status == "provisioned"
    assert reloaded.version == 2
