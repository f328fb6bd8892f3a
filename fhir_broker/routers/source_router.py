import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from fhir_broker.container import get_source_event_log, get_source_service
from fhir_broker.models.source.dto import SourceRegisterPatientDto, TriggerEventDto
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.source.source_system_service import SourceSystemService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/mercy-ehr", tags=["Source system"])


@router.post("/register-patient", summary="Register a patient at the source system")
def register_patient(
    dto: SourceRegisterPatientDto,
    service: SourceSystemService = Depends(get_source_service),
) -> dict[str, Any]:
    return service.register_patient(dto.name, dto.birth_date)


@router.post("/trigger-event", summary="Create an encounter and notify the broker")
def trigger_event(
    dto: TriggerEventDto,
    service: SourceSystemService = Depends(get_source_service),
) -> dict[str, Any]:
    return service.trigger_event(dto.patient.name, dto.patient.birth_date, dto.encounter_options)


@router.get("/fhir/Encounter/{encounter_id}", response_model=None, summary="Read an encounter")
def get_encounter(
    encounter_id: str,
    service: SourceSystemService = Depends(get_source_service),
) -> Any:
    encounter = service.get_encounter(encounter_id)
    if encounter is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return encounter


@router.get("/fhir/Patient/{patient_id}", response_model=None, summary="Read a patient")
def get_patient(
    patient_id: str,
    service: SourceSystemService = Depends(get_source_service),
) -> Any:
    patient = service.get_patient(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return patient


@router.get("/admin/state", summary="Source system state for observability")
def admin_state(
    service: SourceSystemService = Depends(get_source_service),
    event_log: EventLog = Depends(get_source_event_log),
) -> dict[str, Any]:
    return {
        "patients": [
            {"sourceId": p.source_id, "name": p.name, "birthDate": p.birth_date}
            for p in service.patients()
        ],
        "encounters": [e.resource for e in service.encounters()],
        "eventCount": event_log.count,
        "recentEvents": [e.model_dump() for e in event_log.recent(50)],
    }
