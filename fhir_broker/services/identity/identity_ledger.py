import logging
import secrets
import threading
from typing import Dict, List

from fhir_broker.models.patient.dto import IdentityLink, PatientRecord
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.identity.demographics import name_matches, traits_match

logger = logging.getLogger(__name__)

CANONICAL_ID_PREFIX = "broker-"


class IdentityLedger:
    """
    Resolves source system patient ids to the broker's canonical patient ids. There is no
    shared key between systems, so linking is done on demographics only.
    """

    def __init__(self, event_log: EventLog) -> None:
        self.__event_log = event_log
        self.__patients: Dict[str, PatientRecord] = {}
        self.__links: Dict[str, str] = {}
        self.__lock = threading.Lock()

    def register(self, local_id: str, name: str, birth_date: str) -> str:
        """
        Links local_id to the patient matching (name, birth_date), creating a new canonical
        patient when none matches. Matching and creating happen under one lock so two
        concurrent registrations of the same person end up on the same record.
        """
        with self.__lock:
            existing = self.__find(name, birth_date)
            if existing is not None:
                self.__links[local_id] = existing.id
                self.__event_log.push(
                    "patient-linked",
                    f"Linked source {local_id} -> existing {existing.id} ({name})",
                    source=local_id,
                    broker=existing.id,
                )
                return existing.id

            record = PatientRecord(id=self.__new_id(), name=name, birth_date=birth_date)
            self.__patients[record.id] = record
            self.__links[local_id] = record.id

        self.__event_log.push(
            "patient-registered",
            f"Registered {name} (DOB {birth_date}): {local_id} -> {record.id}",
            source=local_id,
            broker=record.id,
        )
        return record.id

    def resolve(self, local_id: str) -> str | None:
        with self.__lock:
            return self.__links.get(local_id)

    def match_by_demographics(self, name: str, birth_date: str) -> PatientRecord | None:
        with self.__lock:
            return self.__find(name, birth_date)

    def match_by_traits(
        self, family: str, given: List[str], birth_date: str
    ) -> PatientRecord | None:
        """
        Same rule as match_by_demographics, for callers holding a structured
        family/given name such as a permission ticket.
        """
        with self.__lock:
            for record in self.__patients.values():
                if traits_match(family, given, birth_date, record.name, record.birth_date):
                    return record
        return None

    def get(self, canonical_id: str) -> PatientRecord | None:
        with self.__lock:
            return self.__patients.get(canonical_id)

    def records(self) -> List[PatientRecord]:
        with self.__lock:
            return list(self.__patients.values())

    def links(self) -> List[IdentityLink]:
        with self.__lock:
            return [
                IdentityLink(local_id=local_id, canonical_id=canonical_id)
                for local_id, canonical_id in self.__links.items()
            ]

    def __find(self, name: str, birth_date: str) -> PatientRecord | None:
        # Insertion order, so the first registered record wins on ambiguous matches
        for record in self.__patients.values():
            if name_matches(name, birth_date, record.name, record.birth_date):
                return record
        return None

    def __new_id(self) -> str:
        while True:
            # 24 bits of randomness, regenerated on the rare collision
            candidate = f"{CANONICAL_ID_PREFIX}{secrets.token_hex(3)}"
            if candidate not in self.__patients:
                return candidate
