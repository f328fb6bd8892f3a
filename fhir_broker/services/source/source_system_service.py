import logging
import secrets
import threading
from typing import Any, Dict, List

from fastapi import HTTPException
from requests.exceptions import RequestException

from fhir_broker.models.fanout.dto import ClinicalEvent
from fhir_broker.models.source.dto import EncounterOptions, EncounterRecord, SourcePatient
from fhir_broker.services.api.broker_api import BrokerApi
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.fhir.resources import (
    describe_encounter,
    make_encounter,
    make_patient,
    to_json,
)

logger = logging.getLogger(__name__)

SOURCE_ID_PREFIX = "mercy-"
ENCOUNTER_ID_PREFIX = "enc-"
ENCOUNTER_START = "encounter-start"


class SourceSystemService:
    """
    The source-of-record system (an EHR). It owns its own patient ids, creates
    encounters and tells the broker about them using those local ids.
    """

    def __init__(self, broker_api: BrokerApi, event_log: EventLog, base_url: str) -> None:
        self.__broker_api = broker_api
        self.__event_log = event_log
        self.__base_url = base_url
        self.__patients: Dict[str, SourcePatient] = {}
        self.__encounters: Dict[str, EncounterRecord] = {}
        self.__encounter_counter = 0
        self.__lock = threading.Lock()

    def register_patient(self, name: str, birth_date: str) -> Dict[str, Any]:
        """
        Registers a patient locally and with the broker. A broker failure is recorded,
        the local registration stands.
        """
        patient, created = self.__find_or_create(name, birth_date)
        if created:
            self.__event_log.push(
                "patient-registered",
                f"Registered {name} (DOB {birth_date}) as {patient.source_id}",
                source=patient.source_id,
            )
        else:
            self.__event_log.push(
                "patient-found",
                f"Patient {name} already registered as {patient.source_id}",
                source=patient.source_id,
            )

        broker_id = None
        try:
            broker_id = self.__broker_api.register_patient(patient.source_id, name, birth_date)
        except (HTTPException, RequestException) as e:
            logger.warning("Could not register %s with the broker: %s", patient.source_id, e)
            self.__event_log.push("broker-error", f"Failed to register with broker: {e}")

        return {"sourceId": patient.source_id, "brokerId": broker_id}

    def trigger_event(
        self, name: str, birth_date: str, options: EncounterOptions | None = None
    ) -> Dict[str, Any]:
        """
        Creates an Encounter for the patient and emits an encounter-start event to the
        broker. Unknown patients are registered locally only, the broker learns about
        them from register_patient.
        """
        options = options or EncounterOptions()
        patient, created = self.__find_or_create(name, birth_date)
        if created:
            self.__event_log.push(
                "patient-auto-registered",
                f"Auto-registered {name} as {patient.source_id}",
                source=patient.source_id,
            )

        with self.__lock:
            self.__encounter_counter += 1
            encounter_id = f"{ENCOUNTER_ID_PREFIX}{self.__encounter_counter}"
        encounter = to_json(make_encounter(encounter_id, patient.source_id, patient.name, options))
        with self.__lock:
            self.__encounters[encounter_id] = EncounterRecord(
                source_id=patient.source_id, resource=encounter
            )

        self.__event_log.push(
            "encounter-created",
            f"Encounter/{encounter_id} created - {describe_encounter(options)} for {patient.name}",
            resource=encounter,
            source=patient.source_id,
        )

        event = ClinicalEvent(
            event_type=ENCOUNTER_START,
            patient=patient.source_id,
            resource=f"Encounter/{encounter_id}",
            data_source_base=self.__base_url,
        )
        fanout = None
        try:
            fanout = self.__broker_api.emit_event(event)
            self.__event_log.push("event-sent", "Event sent to broker", fanout=fanout)
        except (HTTPException, RequestException) as e:
            logger.warning("Could not send event for %s to the broker: %s", encounter_id, e)
            self.__event_log.push("event-error", f"Failed to reach broker: {e}")

        return {
            "ok": True,
            "encounterId": encounter_id,
            "sourceId": patient.source_id,
            "fanout": fanout,
        }

    def get_encounter(self, encounter_id: str) -> Dict[str, Any] | None:
        with self.__lock:
            record = self.__encounters.get(encounter_id)
        if record is None:
            return None

        self.__event_log.push("encounter-read", f"Encounter/{encounter_id} read by client")
        return record.resource

    def get_patient(self, source_id: str) -> Dict[str, Any] | None:
        with self.__lock:
            patient = self.__patients.get(source_id)
        return patient.resource if patient else None

    def patients(self) -> List[SourcePatient]:
        with self.__lock:
            return list(self.__patients.values())

    def encounters(self) -> List[EncounterRecord]:
        with self.__lock:
            return list(self.__encounters.values())

    def __find_or_create(self, name: str, birth_date: str) -> tuple[SourcePatient, bool]:
        # The EHR's own registry matches on exact name and birth date
        with self.__lock:
            for patient in self.__patients.values():
                if patient.name == name and patient.birth_date == birth_date:
                    return patient, False

            source_id = self.__new_id()
            patient = SourcePatient(
                source_id=source_id,
                name=name,
                birth_date=birth_date,
                resource=to_json(make_patient(source_id, name, birth_date)),
            )
            self.__patients[source_id] = patient
            return patient, True

    def __new_id(self) -> str:
        while True:
            candidate = f"{SOURCE_ID_PREFIX}{secrets.token_hex(3)}"
            if candidate not in self.__patients:
                return candidate
