from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_onboarding.core.deps import Runtime, get_db, get_runtime
from tenant_onboarding.events.router import handle_event
from tenant_onboarding.events.schemas import EventEnvelope

router = APIRouter(tags=["events"])


@router.post("/events")
def receive_event(envelope: EventEnvelope, db: Session = Depends(get_db), runtime: Runtime = Depends(get_runtime)):
    handle_event(db, runtime, envelope)
    return {"status": "ok"}
