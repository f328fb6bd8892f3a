from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NoMatchReason = Literal["unmapped-patient", "no-subscribers"]


class ClinicalEvent(BaseModel):
    """
    Inbound trigger from a source system, keyed by that system's local patient id.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_type: str = Field(default="encounter-start", alias="eventType")
    patient: str = Field(min_length=1)
    resource: str = Field(alias="encounter", min_length=1)
    data_source_base: str | None = Field(default=None, alias="dataSourceBase")


class DeliveryAttempt(BaseModel):
    subscription_id: str
    endpoint: str
    success: bool
    status_code: int | None = None
    error: str | None = None


class FanoutResult(BaseModel):
    matched: bool
    reason: NoMatchReason | None = None
    patient: str | None = None
    count: int = 0
    deliveries: list[DeliveryAttempt] = []

    @classmethod
    def no_match(cls, reason: NoMatchReason, patient: str | None = None) -> "FanoutResult":
        return cls(matched=False, reason=reason, patient=patient)

    @property
    def failed(self) -> list[DeliveryAttempt]:
        return [d for d in self.deliveries if not d.success]
