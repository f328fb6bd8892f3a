from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List

from fhir_broker.models.fanout.dto import ClinicalEvent, DeliveryAttempt, FanoutResult
from fhir_broker.models.subscription.dto import SubscriptionDto
from fhir_broker.services.api.delivery_api import DeliveryApi
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.fhir.resources import make_notification_bundle, to_json
from fhir_broker.services.identity.identity_ledger import IdentityLedger
from fhir_broker.services.subscription.subscription_registry import SubscriptionRegistry
from fhir_broker.stats import Stats

logger = logging.getLogger(__name__)


class NotificationFanoutService:
    """
    Accepts events keyed by a source system's patient id, resolves them to the canonical
    patient and notifies every subscription for that patient.

    Delivery is best effort: one attempt per matched subscription per event, no retry
    queue and no dead letters. A failed delivery is recorded and never affects the other
    deliveries of the same event.
    """

    def __init__(
        self,
        identity_ledger: IdentityLedger,
        subscription_registry: SubscriptionRegistry,
        delivery_api: DeliveryApi,
        event_log: EventLog,
        stats: Stats,
        max_concurrent_deliveries: int = 1,
    ) -> None:
        self.__identity_ledger = identity_ledger
        self.__subscription_registry = subscription_registry
        self.__delivery_api = delivery_api
        self.__event_log = event_log
        self.__stats = stats
        self.__max_concurrent_deliveries = max(1, max_concurrent_deliveries)

    def ingest(self, event: ClinicalEvent) -> FanoutResult:
        with self.__stats.timer("fanout.ingest"):
            self.__stats.inc("fanout.events")
            self.__event_log.push(
                "event-received",
                f"Event from data source: {event.event_type} for patient {event.patient}",
                event_type=event.event_type,
                source=event.patient,
                resource=event.resource,
            )

            canonical_id = self.__identity_ledger.resolve(event.patient)
            if canonical_id is None:
                self.__event_log.push(
                    "patient-no-match", f"No mapping for source patient {event.patient}"
                )
                return FanoutResult.no_match("unmapped-patient")

            self.__event_log.push(
                "patient-matched", f"Mapped source {event.patient} -> {canonical_id}"
            )

            subscriptions = self.__subscription_registry.find_by_patient(canonical_id)
            if len(subscriptions) == 0:
                self.__event_log.push(
                    "no-subscriptions", f"No active subscriptions for {canonical_id}"
                )
                return FanoutResult.no_match("no-subscribers", patient=canonical_id)

            deliveries = self.__deliver_all(subscriptions, event)
            return FanoutResult(
                matched=True,
                patient=canonical_id,
                count=len(subscriptions),
                deliveries=deliveries,
            )

    def __deliver_all(
        self, subscriptions: List[SubscriptionDto], event: ClinicalEvent
    ) -> List[DeliveryAttempt]:
        if self.__max_concurrent_deliveries <= 1 or len(subscriptions) == 1:
            return [self.__deliver_one(s, event) for s in subscriptions]

        results: Dict[str, DeliveryAttempt] = {}
        workers = min(self.__max_concurrent_deliveries, len(subscriptions))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map = {
                executor.submit(self.__deliver_one, subscription, event): subscription
                for subscription in subscriptions
            }
            for future in as_completed(future_map):
                subscription = future_map[future]
                try:
                    results[subscription.id] = future.result()
                except Exception as e:
                    logger.exception(
                        "Unhandled exception while delivering to subscription %s", subscription.id
                    )
                    results[subscription.id] = DeliveryAttempt(
                        subscription_id=subscription.id,
                        endpoint=subscription.endpoint,
                        success=False,
                        error=str(e),
                    )

        # Report in subscription order regardless of completion order
        return [results[s.id] for s in subscriptions]

    def __deliver_one(
        self, subscription: SubscriptionDto, event: ClinicalEvent
    ) -> DeliveryAttempt:
        try:
            payload = self.build_payload(subscription, event)
            self.__event_log.push(
                "notification-sending",
                f"Delivering notification for Subscription/{subscription.id}",
                subscription=subscription.id,
                resource=payload,
            )
            response = self.__delivery_api.deliver(subscription.endpoint, payload)
        except Exception as e:
            logger.warning("Delivery to %s failed: %s", subscription.endpoint, e)
            self.__stats.inc("fanout.delivery.failure")
            self.__event_log.push(
                "notification-error",
                f"Delivery failed: {e}",
                subscription=subscription.id,
            )
            return DeliveryAttempt(
                subscription_id=subscription.id,
                endpoint=subscription.endpoint,
                success=False,
                error=str(e),
            )

        # Any response counts as delivered, status codes are for the receiver to interpret
        self.__stats.inc("fanout.delivery.success")
        self.__event_log.push(
            "notification-delivered",
            f"Notification delivered - status {response.status_code}",
            subscription=subscription.id,
            status=response.status_code,
        )
        return DeliveryAttempt(
            subscription_id=subscription.id,
            endpoint=subscription.endpoint,
            success=True,
            status_code=response.status_code,
        )

    @staticmethod
    def build_payload(subscription: SubscriptionDto, event: ClinicalEvent) -> Dict[str, Any]:
        return to_json(make_notification_bundle(subscription.id, event.resource))
