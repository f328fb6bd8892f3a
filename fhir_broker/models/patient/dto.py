from pydantic import BaseModel, ConfigDict, Field


class PatientDemographics(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    birth_date: str = Field(alias="birthDate", min_length=1)


class PatientRecord(BaseModel):
    """
    One canonical patient as known by the broker. Never updated after registration.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    birth_date: str


class IdentityLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    local_id: str
    canonical_id: str


class RegisterPatientDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_id: str | None = Field(default=None, alias="sourceId")
    name: str = Field(min_length=1)
    birth_date: str = Field(alias="birthDate", min_length=1)


class PatientMappingDto(BaseModel):
    source: str
    broker: str
    name: str | None = None
    birth_date: str | None = Field(default=None, serialization_alias="birthDate")
