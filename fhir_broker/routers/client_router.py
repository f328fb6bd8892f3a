import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from fhir_broker.container import get_client_event_log, get_client_service
from fhir_broker.models.client.dto import QuickAuthDto
from fhir_broker.models.patient.dto import PatientDemographics
from fhir_broker.services.client.subscriber_client_service import SubscriberClientService
from fhir_broker.services.events.event_log import EventLog

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/client", tags=["Subscribing client"])


@router.post("/quick-auth", summary="Authenticate to the broker and subscribe for a patient")
def quick_auth(
    dto: QuickAuthDto,
    service: SubscriberClientService = Depends(get_client_service),
) -> dict[str, Any]:
    session = service.quick_auth(dto.patient)
    return {
        "ok": session.token is not None and len(session.subscriptions) > 0,
        "patient": session.token.patient if session.token else None,
        "subscriptions": session.subscriptions,
        "errors": session.errors,
    }


@router.post("/notifications", summary="Receive a notification bundle")
def notifications(
    bundle: dict[str, Any] = Body(...),
    service: SubscriberClientService = Depends(get_client_service),
) -> dict[str, Any]:
    session = service.receive_notification(bundle)
    return {"ok": True, "matched": session is not None}


@router.get("/state", summary="Client session state")
def state(
    name: str | None = Query(default=None),
    birth_date: str | None = Query(default=None, alias="birthDate"),
    service: SubscriberClientService = Depends(get_client_service),
    event_log: EventLog = Depends(get_client_event_log),
) -> dict[str, Any]:
    if name is not None and birth_date is not None:
        session = service.get_session(PatientDemographics(name=name, birth_date=birth_date))
        if session is None:
            raise HTTPException(status_code=404, detail="No session for patient")
        sessions = [session]
    else:
        sessions = service.sessions()

    return {
        "sessions": [s.model_dump(exclude={"patient"}) for s in sessions],
        "eventCount": event_log.count,
        "recentEvents": [e.model_dump() for e in event_log.recent(50)],
    }
