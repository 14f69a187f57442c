import json

from tenant_onboarding.events.schemas import OnboardingEvent
from tenant_onboarding.onboarding.status import OnboardingStatus


def test_event_endpoint_dispatches(client, runtime, make_onboarding):
    onboarding = make_onboarding(OnboardingStatus.created)

    resp = client.post(
        "/events",
        json={
            "id": "evt-1",
            "source": "saas-boost",
            "detail-type": OnboardingEvent.INITIATED.value,
            "detail": {"onboardingId": onboarding.id},
        },
    )

    assert resp.json() == {"status": "ok"}
    runtime.sqs.send_message.assert_called_once()
    assert onboarding.status == "validating"


def test_validation_queue_endpoint(client, make_onboarding):
    onboarding = make_onboarding(OnboardingStatus.created)

    resp = client.post(
        "/queues/validation",
        json={"Records": [{"messageId": "message-1", "body": json.dumps({"onboardingId": onboarding.id})}]},
    )

    assert resp.status_code == 200
    assert resp.json() == {"batchItemFailures": []}
    assert onboarding.status == "failed"
