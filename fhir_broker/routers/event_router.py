from typing import Any

from fastapi import APIRouter, Depends

from fhir_broker.container import get_fanout_service
from fhir_broker.models.fanout.dto import ClinicalEvent
from fhir_broker.services.fanout.notification_fanout_service import NotificationFanoutService

router = APIRouter(prefix="/broker/internal", tags=["Broker events"])


@router.post("/event", response_model=None, summary="Ingest a clinical event from a source system")
def ingest_event(
    event: ClinicalEvent,
    service: NotificationFanoutService = Depends(get_fanout_service),
) -> dict[str, Any]:
    return service.ingest(event).model_dump()
