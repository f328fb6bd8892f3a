import logging
from typing import Any, List

from fastapi import APIRouter, Depends, Header, HTTPException
from fhir.resources.R4B.domainresource import DomainResource

from fhir_broker.container import get_subscription_registry, get_ticket_authority
from fhir_broker.models.subscription.dto import SubscriptionCreateDto
from fhir_broker.services.auth.envelope import extract_bearer_token
from fhir_broker.services.auth.permission_ticket_authority import PermissionTicketAuthority
from fhir_broker.services.fhir.resources import (
    make_searchset_bundle,
    make_subscription,
    to_json,
)
from fhir_broker.services.subscription.subscription_registry import SubscriptionRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/broker/fhir/Subscription", tags=["Subscriptions"])

PATIENT_REFERENCE = "Patient/"


def criteria_patient(criteria: str | None) -> str | None:
    if not criteria or PATIENT_REFERENCE not in criteria:
        return None

    patient = criteria.split(PATIENT_REFERENCE, 1)[1].split("&", 1)[0]
    return patient or None


@router.post("", status_code=201, response_model=None, summary="Create a subscription")
def create_subscription(
    dto: SubscriptionCreateDto,
    authorization: str | None = Header(default=None),
    authority: PermissionTicketAuthority = Depends(get_ticket_authority),
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
) -> Any:
    access_token = authority.authenticate(extract_bearer_token(authorization))
    if access_token is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    # The token decides the patient; criteria may repeat it but not name another one
    requested = criteria_patient(dto.criteria)
    if requested is not None and requested != access_token.patient:
        logger.warning(
            "Subscription for %s refused, token is scoped to %s", requested, access_token.patient
        )
        raise HTTPException(status_code=403, detail="Token is not scoped to the requested patient")

    if dto.channel is None or not dto.channel.endpoint:
        raise HTTPException(status_code=400, detail="channel.endpoint is required")

    subscription = registry.create(access_token.patient, dto.channel.endpoint)
    return to_json(make_subscription(subscription))


@router.get("/{subscription_id}", response_model=None, summary="Read a subscription")
def get_subscription(
    subscription_id: str,
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
) -> Any:
    subscription = registry.get(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="Not Found")

    return to_json(make_subscription(subscription))


@router.get("", response_model=None, summary="List subscriptions")
def list_subscriptions(
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
) -> Any:
    resources: List[DomainResource] = [make_subscription(s) for s in registry.list()]
    return to_json(make_searchset_bundle(resources))
