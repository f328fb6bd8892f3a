from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionDto(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    patient: str
    criteria: str
    endpoint: str
    status: Literal["active"] = "active"


class SubscriptionChannelDto(BaseModel):
    type: str = "rest-hook"
    endpoint: str | None = None
    payload: str | None = None


class SubscriptionCreateDto(BaseModel):
    """
    Incoming FHIR Subscription body. Only the fields the broker acts on are read.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    resource_type: str = Field(default="Subscription", alias="resourceType")
    criteria: str | None = None
    channel: SubscriptionChannelDto | None = None
