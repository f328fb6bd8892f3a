import logging
from enum import Enum
from typing import List
from uuid import uuid4

from pydantic import ValidationError

from fhir_broker.models.auth.dto import (
    AccessToken,
    ClientAssertion,
    PatientNameTrait,
    PatientTraits,
    PermissionTicket,
    Rejection,
    RejectionReason,
    TicketCapability,
    TicketContext,
    TicketSubject,
    TokenResponse,
)
from fhir_broker.models.patient.dto import PatientDemographics
from fhir_broker.services.auth.envelope import decode_envelope, encode_envelope
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.identity.demographics import split_name
from fhir_broker.services.identity.identity_ledger import IdentityLedger

logger = logging.getLogger(__name__)

TICKET_KEY_ID = "demo-idp-key-1"
ASSERTION_KEY_ID = "demo-client-key-1"


class ExchangeState(str, Enum):
    REQUESTED = "requested"
    ASSERTION_DECODED = "assertion-decoded"
    TICKET_EXTRACTED = "ticket-extracted"
    DEMOGRAPHICS_MATCHED = "demographics-matched"
    TOKEN_ISSUED = "token-issued"


class PermissionTicketAuthority:
    """
    Issues permission tickets and client assertions, and exchanges an assertion for an
    access token scoped to the canonical patient the ticket's demographics resolve to.
    Nothing is kept between exchanges.
    """

    def __init__(
        self,
        identity_ledger: IdentityLedger,
        event_log: EventLog,
        signing_key: str,
        ticket_issuer: str,
        network_audience: str,
        default_scopes: List[str],
        access_token_lifetime: int = 3600,
        ticket_lifetime: int = 3600,
        assertion_lifetime: int = 300,
    ) -> None:
        self.__identity_ledger = identity_ledger
        self.__event_log = event_log
        self.__signing_key = signing_key
        self.__ticket_issuer = ticket_issuer
        self.__network_audience = network_audience
        self.__default_scopes = default_scopes
        self.__access_token_lifetime = access_token_lifetime
        self.__ticket_lifetime = ticket_lifetime
        self.__assertion_lifetime = assertion_lifetime

    def issue_ticket(
        self,
        demographics: PatientDemographics,
        client_id: str,
        scopes: List[str] | None = None,
    ) -> str:
        """
        Called by the identity-proofing side once proofing is done. The demographics are
        embedded verbatim since the issuer cannot know the broker's patient ids.
        """
        family, given = split_name(demographics.name)
        context = TicketContext(
            subject=TicketSubject(
                traits=PatientTraits(
                    name=[PatientNameTrait(family=family, given=given)],
                    birth_date=demographics.birth_date,
                )
            ),
            capability=TicketCapability(scopes=scopes or list(self.__default_scopes)),
        )
        claims = {
            "iss": self.__ticket_issuer,
            "sub": client_id,
            "aud": self.__network_audience,
            "ticket_context": context.model_dump(by_alias=True, exclude_none=True),
        }
        return encode_envelope(claims, self.__signing_key, self.__ticket_lifetime, TICKET_KEY_ID)

    def issue_client_assertion(self, client_id: str, audience: str, ticket: str) -> str:
        claims = {
            "iss": client_id,
            "sub": client_id,
            "aud": audience,
            "jti": f"assertion-{uuid4()}",
            "permission_ticket": ticket,
        }
        return encode_envelope(
            claims, self.__signing_key, self.__assertion_lifetime, ASSERTION_KEY_ID
        )

    def exchange_for_token(self, client_assertion: str | None) -> TokenResponse | Rejection:
        if not client_assertion:
            return self.__reject(
                "invalid_request", "Missing client_assertion", ExchangeState.REQUESTED
            )

        assertion = self.decode_assertion(client_assertion)
        if assertion is None:
            return self.__reject(
                "invalid_request",
                "Client assertion could not be decoded",
                ExchangeState.REQUESTED,
            )

        self.__event_log.push(
            "assertion-received",
            f"Client assertion from {assertion.iss}",
            state=ExchangeState.ASSERTION_DECODED.value,
            client_assertion=client_assertion,
        )
        if not assertion.permission_ticket:
            return self.__reject(
                "invalid_request",
                "No permission ticket in client assertion",
                ExchangeState.ASSERTION_DECODED,
            )

        ticket = self.decode_ticket(assertion.permission_ticket)
        if ticket is None:
            return self.__reject(
                "invalid_grant", "No valid permission ticket", ExchangeState.ASSERTION_DECODED
            )

        traits = ticket.ticket_context.subject.traits if ticket.ticket_context.subject else None
        if traits is None or len(traits.name) == 0 or not traits.birth_date:
            return self.__reject(
                "invalid_grant",
                "Permission ticket carries no subject demographics",
                ExchangeState.ASSERTION_DECODED,
            )

        name = traits.name[0]
        display_name = " ".join([*name.given, name.family])
        self.__event_log.push(
            "ticket-extracted",
            f"Permission ticket from {ticket.iss}: {display_name}, DOB {traits.birth_date}",
            state=ExchangeState.TICKET_EXTRACTED.value,
            permission_ticket=assertion.permission_ticket,
            ticket_payload=ticket.model_dump(by_alias=True),
        )

        matched = self.__identity_ledger.match_by_traits(name.family, name.given, traits.birth_date)
        if matched is None:
            self.__event_log.push(
                "demographic-match-failed",
                f"No patient match for {display_name}, DOB {traits.birth_date}",
                state=ExchangeState.TICKET_EXTRACTED.value,
                family=name.family,
                given=name.given,
                birth_date=traits.birth_date,
            )
            return Rejection(error="invalid_grant", error_description="No patient match")

        self.__event_log.push(
            "demographic-match-success",
            f"Matched -> {matched.id} ({matched.name}, DOB {matched.birth_date})",
            state=ExchangeState.DEMOGRAPHICS_MATCHED.value,
            patient=matched.id,
        )

        scope = " ".join(ticket.ticket_context.capability.scopes)
        access_token = encode_envelope(
            {"sub": assertion.iss, "patient": matched.id, "scope": scope},
            self.__signing_key,
            self.__access_token_lifetime,
        )
        self.__event_log.push(
            "token-issued",
            f"Token issued - patient: {matched.id}, scopes: {scope}",
            state=ExchangeState.TOKEN_ISSUED.value,
            patient=matched.id,
        )
        return TokenResponse(
            access_token=access_token,
            expires_in=self.__access_token_lifetime,
            patient=matched.id,
            scope=scope,
        )

    def authenticate(self, bearer_token: str | None) -> AccessToken | None:
        """
        Decodes a bearer token issued by exchange_for_token. Expired or malformed tokens
        yield None.
        """
        claims = decode_envelope(bearer_token)
        if claims is None:
            return None

        try:
            return AccessToken.model_validate(claims)
        except ValidationError:
            logger.info("Bearer token does not carry access token claims")
            return None

    @staticmethod
    def decode_assertion(client_assertion: str) -> ClientAssertion | None:
        claims = decode_envelope(client_assertion)
        if claims is None:
            return None

        try:
            return ClientAssertion.model_validate(claims)
        except ValidationError:
            return None

    @staticmethod
    def decode_ticket(ticket: str) -> PermissionTicket | None:
        claims = decode_envelope(ticket)
        if claims is None:
            return None

        try:
            return PermissionTicket.model_validate(claims)
        except ValidationError:
            return None

    def __reject(
        self, reason: RejectionReason, description: str, state: ExchangeState
    ) -> Rejection:
        self.__event_log.push("token-error", description, state=state.value, error=reason)
        return Rejection(error=reason, error_description=description)
