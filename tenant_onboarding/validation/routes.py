from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tenant_onboarding.core.deps import Runtime, get_db, get_runtime
from tenant_onboarding.validation.worker import process_validation_batch

router = APIRouter(prefix="/queues", tags=["validation"])


class QueueBatch(BaseModel):
    records: List[Dict[str, Any]] = Field(default_factory=list, alias="Records")


@router.post("/validation")
def validate_batch(batch: QueueBatch, db: Session = Depends(get_db), runtime: Runtime = Depends(get_runtime)):
    return process_validation_batch(db, runtime, batch.records)
