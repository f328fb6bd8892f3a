from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fhir_broker.models.patient.dto import PatientDemographics


class EncounterOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    class_code: str | None = Field(default=None, alias="classCode")
    type_code: str | None = Field(default=None, alias="typeCode")
    reason_code: str | None = Field(default=None, alias="reasonCode")
    status: str = Field(default="in-progress")
    scheduled_date: str | None = Field(default=None, alias="scheduledDate")

    @field_validator("scheduled_date")
    def validate_scheduled_date(cls, v: str | None) -> str | None:
        if v is None:
            return v
        datetime.fromisoformat(v)
        return v

    @field_validator("status", mode="before")
    def validate_status(cls, v: Any) -> str:
        if v in (None, "", " "):
            return "in-progress"
        return str(v)


class SourceRegisterPatientDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    birth_date: str = Field(alias="birthDate", min_length=1)


class TriggerEventDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient: PatientDemographics
    encounter_options: EncounterOptions | None = Field(default=None, alias="encounterOptions")


class SourcePatient(BaseModel):
    source_id: str
    name: str
    birth_date: str
    resource: Dict[str, Any]


class EncounterRecord(BaseModel):
    source_id: str
    resource: Dict[str, Any]
