from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from requests.exceptions import ConnectionError

from fhir_broker.models.fanout.dto import ClinicalEvent
from fhir_broker.models.source.dto import EncounterOptions
from fhir_broker.services.api.broker_api import BrokerApi
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.source.source_system_service import SourceSystemService


@pytest.fixture
def broker_api() -> MagicMock:
    api = MagicMock(spec=BrokerApi)
    api.register_patient.return_value = "broker-abc"
    api.emit_event.return_value = {"matched": True, "count": 1, "deliveries": []}
    return api


@pytest.fixture
def source_service(broker_api: MagicMock, event_log: EventLog) -> SourceSystemService:
    return SourceSystemService(broker_api, event_log, "http://ehr.test/mercy-ehr")


def test_register_patient(source_service: SourceSystemService, broker_api: MagicMock) -> None:
    result = source_service.register_patient("Alice Smith", "1987-04-12")

    assert result["sourceId"].startswith("mercy-")
    assert result["brokerId"] == "broker-abc"
    broker_api.register_patient.assert_called_once_with(
        result["sourceId"], "Alice Smith", "1987-04-12"
    )
    patient = source_service.get_patient(result["sourceId"])
    assert patient is not None
    assert patient["resourceType"] == "Patient"
    assert patient["birthDate"] == "1987-04-12"


def test_register_patient_twice_keeps_local_id(source_service: SourceSystemService) -> None:
    first = source_service.register_patient("Alice Smith", "1987-04-12")
    second = source_service.register_patient("Alice Smith", "1987-04-12")

    assert first["sourceId"] == second["sourceId"]
    assert len(source_service.patients()) == 1


@pytest.mark.parametrize(
    "error", [HTTPException(status_code=502), ConnectionError("Connection refused")]
)
def test_register_patient_survives_broker_failure(
    source_service: SourceSystemService,
    broker_api: MagicMock,
    event_log: EventLog,
    error: Exception,
) -> None:
    broker_api.register_patient.side_effect = error

    result = source_service.register_patient("Alice Smith", "1987-04-12")

    assert result["brokerId"] is None
    assert len(source_service.patients()) == 1
    assert len(event_log.of_type("broker-error")) == 1


def test_trigger_event_creates_encounter_and_emits_event(
    source_service: SourceSystemService, broker_api: MagicMock
) -> None:
    registered = source_service.register_patient("Alice Smith", "1987-04-12")

    result = source_service.trigger_event(
        "Alice Smith", "1987-04-12", EncounterOptions(class_code="IMP")
    )

    assert result["ok"] is True
    assert result["encounterId"] == "enc-1"
    assert result["sourceId"] == registered["sourceId"]
    assert result["fanout"] == {"matched": True, "count": 1, "deliveries": []}
    event: ClinicalEvent = broker_api.emit_event.call_args[0][0]
    assert event.patient == registered["sourceId"]
    assert event.resource == "Encounter/enc-1"
    assert event.event_type == "encounter-start"
    assert event.data_source_base == "http://ehr.test/mercy-ehr"

    encounter = source_service.get_encounter("enc-1")
    assert encounter is not None
    assert encounter["class"]["code"] == "IMP"
    assert encounter["subject"]["reference"] == f"Patient/{registered['sourceId']}"


def test_trigger_event_for_unknown_patient_registers_locally_only(
    source_service: SourceSystemService, broker_api: MagicMock, event_log: EventLog
) -> None:
    result = source_service.trigger_event("Bob Jones", "1970-01-01")

    assert result["sourceId"].startswith("mercy-")
    broker_api.register_patient.assert_not_called()
    broker_api.emit_event.assert_called_once()
    assert len(event_log.of_type("patient-auto-registered")) == 1


def test_trigger_event_survives_broker_failure(
    source_service: SourceSystemService, broker_api: MagicMock, event_log: EventLog
) -> None:
    broker_api.emit_event.side_effect = ConnectionError("Connection refused")

    result = source_service.trigger_event("Alice Smith", "1987-04-12")

    assert result["ok"] is True
    assert result["fanout"] is None
    assert len(event_log.of_type("event-error")) == 1
    assert source_service.get_encounter(result["encounterId"]) is not None


def test_encounter_ids_are_sequential(source_service: SourceSystemService) -> None:
    first = source_service.trigger_event("Alice Smith", "1987-04-12")
    second = source_service.trigger_event("Alice Smith", "1987-04-12")

    assert (first["encounterId"], second["encounterId"]) == ("enc-1", "enc-2")
    assert len(source_service.encounters()) == 2


def test_get_unknown_resources(source_service: SourceSystemService) -> None:
    assert source_service.get_encounter("enc-404") is None
    assert source_service.get_patient("mercy-404") is None
