import logging
import threading
from typing import Dict, List

from fhir_broker.models.subscription.dto import SubscriptionDto
from fhir_broker.services.events.event_log import EventLog

logger = logging.getLogger(__name__)

SUBSCRIPTION_ID_PREFIX = "sub-"


def make_criteria(patient: str) -> str:
    return f"Encounter?patient=Patient/{patient}"


class SubscriptionRegistry:
    """
    In-memory store of subscriptions. Subscriptions are never updated or removed, they
    live as long as the process.
    """

    def __init__(self, event_log: EventLog) -> None:
        self.__event_log = event_log
        self.__subscriptions: Dict[str, SubscriptionDto] = {}
        self.__counter = 0
        self.__lock = threading.Lock()

    def create(self, patient: str, endpoint: str) -> SubscriptionDto:
        with self.__lock:
            self.__counter += 1
            subscription = SubscriptionDto(
                id=f"{SUBSCRIPTION_ID_PREFIX}{self.__counter}",
                patient=patient,
                criteria=make_criteria(patient),
                endpoint=endpoint,
            )
            self.__subscriptions[subscription.id] = subscription

        self.__event_log.push(
            "subscription-created",
            f"Subscription/{subscription.id} - monitoring encounters for {patient}",
            subscription=subscription.id,
            patient=patient,
        )
        return subscription

    def get(self, subscription_id: str) -> SubscriptionDto | None:
        with self.__lock:
            return self.__subscriptions.get(subscription_id)

    def list(self) -> List[SubscriptionDto]:
        with self.__lock:
            return list(self.__subscriptions.values())

    def find_by_patient(self, patient: str) -> List[SubscriptionDto]:
        """
        Linear scan over all subscriptions, O(subscriptions) per call.
        """
        with self.__lock:
            return [s for s in self.__subscriptions.values() if s.patient == patient]
