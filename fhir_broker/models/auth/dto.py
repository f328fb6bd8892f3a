from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RejectionReason = Literal["invalid_request", "invalid_grant"]


class PatientNameTrait(BaseModel):
    family: str
    given: list[str] = []


class PatientTraits(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resource_type: Literal["Patient"] = Field(default="Patient", alias="resourceType")
    name: list[PatientNameTrait] = []
    birth_date: str | None = Field(default=None, alias="birthDate")


class TicketSubject(BaseModel):
    type: Literal["match"] = "match"
    traits: PatientTraits | None = None


class TicketCapability(BaseModel):
    scopes: list[str] = []


class TicketContext(BaseModel):
    subject: TicketSubject | None = None
    capability: TicketCapability = TicketCapability()


class PermissionTicket(BaseModel):
    """
    Authorization envelope from the identity provider. It names the patient by
    demographics only, the issuer has no access to the broker's identifiers.
    """
    model_config = ConfigDict(frozen=True)

    iss: str
    sub: str
    aud: str
    ticket_context: TicketContext
    iat: int
    exp: int


class ClientAssertion(BaseModel):
    model_config = ConfigDict(frozen=True)

    iss: str
    sub: str
    aud: str
    jti: str | None = None
    permission_ticket: str | None = None
    iat: int
    exp: int


class AccessToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    sub: str
    patient: str
    scope: str
    iat: int
    exp: int

    @property
    def scopes(self) -> list[str]:
        return self.scope.split()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    patient: str
    scope: str


class Rejection(BaseModel):
    error: RejectionReason
    error_description: str


class TokenRequestDto(BaseModel):
    grant_type: str | None = None
    client_assertion_type: str | None = None
    client_assertion: str | None = None

    @classmethod
    def from_mapping(cls, data: Any) -> "TokenRequestDto":
        if not isinstance(data, dict):
            return cls()
        return cls(
            grant_type=_str_or_none(data.get("grant_type")),
            client_assertion_type=_str_or_none(data.get("client_assertion_type")),
            client_assertion=_str_or_none(data.get("client_assertion")),
        )


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value != "" else None
