import logging
import secrets
from typing import Any

from fastapi import APIRouter, Depends

from fhir_broker.container import (
    get_broker_event_log,
    get_identity_ledger,
    get_subscription_registry,
)
from fhir_broker.models.patient.dto import PatientMappingDto, RegisterPatientDto
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.identity.identity_ledger import IdentityLedger
from fhir_broker.services.subscription.subscription_registry import SubscriptionRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/broker", tags=["Broker"])

GENERATED_LOCAL_ID_PREFIX = "local-"


@router.post("/register-patient", summary="Register a source system patient")
def register_patient(
    dto: RegisterPatientDto,
    ledger: IdentityLedger = Depends(get_identity_ledger),
) -> dict[str, str]:
    local_id = dto.source_id or f"{GENERATED_LOCAL_ID_PREFIX}{secrets.token_hex(4)}"
    broker_id = ledger.register(local_id, dto.name, dto.birth_date)
    return {"brokerId": broker_id, "sourceId": local_id}


@router.get("/patient-mappings", summary="Source id to broker id mappings")
def patient_mappings(
    ledger: IdentityLedger = Depends(get_identity_ledger),
) -> list[dict[str, Any]]:
    mappings = []
    for link in ledger.links():
        record = ledger.get(link.canonical_id)
        mappings.append(
            PatientMappingDto(
                source=link.local_id,
                broker=link.canonical_id,
                name=record.name if record else None,
                birth_date=record.birth_date if record else None,
            ).model_dump(by_alias=True)
        )
    return mappings


@router.get("/admin/state", summary="Broker state for observability")
def admin_state(
    ledger: IdentityLedger = Depends(get_identity_ledger),
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
    event_log: EventLog = Depends(get_broker_event_log),
) -> dict[str, Any]:
    return {
        "patients": [r.model_dump() for r in ledger.records()],
        "subscriptions": [s.model_dump() for s in registry.list()],
        "mappings": [
            {"source": link.local_id, "broker": link.canonical_id} for link in ledger.links()
        ],
        "eventCount": event_log.count,
        "recentEvents": [e.model_dump() for e in event_log.recent(50)],
    }
