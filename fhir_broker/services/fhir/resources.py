from datetime import date, datetime, timezone
from typing import Any, Dict, List
from uuid import uuid4

from fastapi.encoders import jsonable_encoder
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.domainresource import DomainResource
from fhir.resources.R4B.encounter import Encounter
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.resource import Resource
from fhir.resources.R4B.subscription import Subscription
from fhir.resources.R4B.subscriptionstatus import SubscriptionStatus

from fhir_broker.models.source.dto import EncounterOptions
from fhir_broker.models.subscription.dto import SubscriptionDto
from fhir_broker.services.identity.demographics import split_name

BACKPORT_TOPIC_URL = "http://hl7.org/fhir/uv/subscriptions-backport/StructureDefinition/backport-topic-canonical"
ENCOUNTER_START_TOPIC = "http://example.org/fhir/SubscriptionTopic/encounter-start"
US_CORE_ENCOUNTER = "http://hl7.org/fhir/us/core/StructureDefinition/us-core-encounter"
ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
SNOMED_SYSTEM = "http://snomed.info/sct"

# v3-ActEncounterCode
ENCOUNTER_CLASSES: Dict[str, str] = {
    "EMER": "emergency",
    "AMB": "ambulatory",
    "IMP": "inpatient encounter",
    "OBSENC": "observation encounter",
    "PRENC": "pre-admission",
    "SS": "short stay",
    "VR": "virtual",
}

# SNOMED CT code -> (display, short text)
ENCOUNTER_TYPES: Dict[str, tuple[str, str]] = {
    "50849002": ("Emergency department patient visit", "ED visit"),
    "185349003": ("Encounter for check up", "Check-up"),
    "308335008": ("Patient encounter procedure", "Procedure"),
    "390906007": ("Follow-up encounter", "Follow-up"),
    "281036007": ("Follow-up consultation", "Consultation"),
    "183452005": ("Emergency hospital admission", "Emergency admission"),
    "32485007": ("Hospital admission", "Hospital admission"),
}

REASON_CODES: Dict[str, str] = {
    "3723001": "Arthritis",
    "386661006": "Fever",
    "25064002": "Headache",
    "267036007": "Dyspnea",
    "29857009": "Chest pain",
    "422587007": "Nausea",
    "161891005": "Back pain",
    "422400008": "Vomiting",
}

DEFAULT_CLASS = "EMER"
DEFAULT_TYPE = "50849002"


def to_json(resource: Resource) -> Dict[str, Any]:
    """
    Returns the FHIR JSON representation of a resource model.
    """
    return jsonable_encoder(resource.model_dump(by_alias=True, exclude_none=True))  # type: ignore[no-any-return]


def make_subscription(subscription: SubscriptionDto) -> Subscription:
    return Subscription.model_validate(
        {
            "resourceType": "Subscription",
            "id": subscription.id,
            "status": subscription.status,
            "reason": "Monitor admission events",
            "criteria": subscription.criteria,
            "channel": {
                "type": "rest-hook",
                "endpoint": subscription.endpoint,
                "payload": "application/fhir+json",
            },
            "extension": [
                {"url": BACKPORT_TOPIC_URL, "valueUri": ENCOUNTER_START_TOPIC},
            ],
        }
    )


def make_searchset_bundle(resources: List[DomainResource]) -> Bundle:
    return Bundle.model_validate(
        {
            "resourceType": "Bundle",
            "type": "searchset",
            "total": len(resources),
            "entry": [{"resource": r} for r in resources],
        }
    )


def make_notification_bundle(subscription_id: str, focus_reference: str) -> Bundle:
    """
    Builds an id-only subscription-notification Bundle: a SubscriptionStatus naming the
    subscription with one event whose focus is the triggering resource.
    """
    status = SubscriptionStatus.model_validate(
        {
            "resourceType": "SubscriptionStatus",
            "status": "active",
            "type": "event-notification",
            "eventsSinceSubscriptionStart": "1",
            "subscription": {"reference": f"Subscription/{subscription_id}"},
            "notificationEvent": [
                {"eventNumber": "1", "focus": {"reference": focus_reference}},
            ],
        }
    )
    return Bundle.model_validate(
        {
            "resourceType": "Bundle",
            "type": "subscription-notification",
            "timestamp": datetime.now(timezone.utc),
            "entry": [{"fullUrl": f"urn:uuid:{uuid4()}", "resource": status}],
        }
    )


def make_patient(patient_id: str, name: str, birth_date: str | None = None) -> Patient:
    family, given = split_name(name)
    human_name: Dict[str, Any] = {}
    if family:
        human_name["family"] = family
    if given:
        human_name["given"] = given

    data: Dict[str, Any] = {"resourceType": "Patient", "id": patient_id}
    if human_name:
        data["name"] = [human_name]
    if birth_date is not None and _is_iso_date(birth_date):
        data["birthDate"] = birth_date

    return Patient.model_validate(data)


def make_encounter(
    encounter_id: str,
    patient_ref: str,
    patient_name: str | None = None,
    options: EncounterOptions | None = None,
) -> Encounter:
    options = options or EncounterOptions()
    class_code = options.class_code if options.class_code in ENCOUNTER_CLASSES else DEFAULT_CLASS
    type_code = options.type_code if options.type_code in ENCOUNTER_TYPES else DEFAULT_TYPE
    type_display, type_text = ENCOUNTER_TYPES[type_code]

    period_start = datetime.now(timezone.utc)
    if options.scheduled_date:
        period_start = datetime.fromisoformat(options.scheduled_date)
        if period_start.tzinfo is None:
            period_start = period_start.replace(tzinfo=timezone.utc)

    data: Dict[str, Any] = {
        "resourceType": "Encounter",
        "id": encounter_id,
        "meta": {"profile": [US_CORE_ENCOUNTER]},
        "status": options.status,
        "class": {
            "system": ACT_CODE_SYSTEM,
            "code": class_code,
            "display": ENCOUNTER_CLASSES[class_code],
        },
        "type": [
            {
                "coding": [{"system": SNOMED_SYSTEM, "code": type_code, "display": type_display}],
                "text": f"{type_text} for {patient_name}" if patient_name else type_display,
            }
        ],
        "subject": {"reference": f"Patient/{patient_ref}"},
        "period": {"start": period_start},
        "serviceProvider": {
            "reference": "Organization/mercy-hospital",
            "display": "Mercy General Hospital",
        },
    }

    if options.reason_code and options.reason_code in REASON_CODES:
        reason = REASON_CODES[options.reason_code]
        data["reasonCode"] = [
            {
                "coding": [{"system": SNOMED_SYSTEM, "code": options.reason_code, "display": reason}],
                "text": reason,
            }
        ]

    return Encounter.model_validate(data)


def describe_encounter(options: EncounterOptions) -> str:
    class_code = options.class_code if options.class_code in ENCOUNTER_CLASSES else DEFAULT_CLASS
    type_code = options.type_code if options.type_code in ENCOUNTER_TYPES else DEFAULT_TYPE
    return f"{ENCOUNTER_TYPES[type_code][1]} ({ENCOUNTER_CLASSES[class_code]}, {options.status})"


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True
