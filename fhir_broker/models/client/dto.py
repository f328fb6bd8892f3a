from typing import Any, Dict, List

from pydantic import BaseModel

from fhir_broker.models.patient.dto import PatientDemographics


class ClientToken(BaseModel):
    access_token: str
    patient: str


class ClientSession(BaseModel):
    """
    Per-patient state kept by the subscribing client, keyed by "name|birthDate".
    """
    patient_key: str
    patient: PatientDemographics
    permission_ticket: str | None = None
    client_assertion: str | None = None
    token: ClientToken | None = None
    subscriptions: List[Dict[str, Any]] = []
    notifications: List[Dict[str, Any]] = []
    errors: List[str] = []

    @staticmethod
    def make_key(patient: PatientDemographics) -> str:
        return f"{patient.name}|{patient.birth_date}"


class QuickAuthDto(BaseModel):
    patient: PatientDemographics
