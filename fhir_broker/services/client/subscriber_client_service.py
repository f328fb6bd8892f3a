import logging
import threading
import time
from typing import Any, Dict, List

from fastapi import HTTPException
from requests.exceptions import RequestException

from fhir_broker.models.auth.dto import Rejection
from fhir_broker.models.client.dto import ClientSession, ClientToken
from fhir_broker.models.patient.dto import PatientDemographics
from fhir_broker.services.api.broker_api import BrokerApi
from fhir_broker.services.auth.permission_ticket_authority import PermissionTicketAuthority
from fhir_broker.services.events.event_log import EventLog

logger = logging.getLogger(__name__)


class SubscriberClientService:
    """
    The subscribing client. After identity proofing it holds a permission ticket, trades
    it for a broker access token and subscribes to encounters for the patient id it
    learns from the token response.
    """

    def __init__(
        self,
        ticket_authority: PermissionTicketAuthority,
        broker_api: BrokerApi,
        event_log: EventLog,
        client_id: str,
        broker_audience: str,
        notification_endpoint: str,
    ) -> None:
        self.__ticket_authority = ticket_authority
        self.__broker_api = broker_api
        self.__event_log = event_log
        self.__client_id = client_id
        self.__broker_audience = broker_audience
        self.__notification_endpoint = notification_endpoint
        self.__sessions: Dict[str, ClientSession] = {}
        self.__lock = threading.Lock()

    def quick_auth(self, patient: PatientDemographics) -> ClientSession:
        """
        Identity proofing is assumed complete: the identity provider issues a ticket for
        the patient, after which the client authenticates and subscribes.
        """
        session = self.get_or_create_session(patient)
        self.__event_log.push(
            "identity-verified", f"Identity verified (quick mode) - {patient.name}"
        )

        session.permission_ticket = self.__ticket_authority.issue_ticket(patient, self.__client_id)
        self.__event_log.push(
            "permission-ticket-issued",
            f"Permission ticket issued for {patient.name}",
            permission_ticket=session.permission_ticket,
        )

        self.__authenticate_and_subscribe(session)
        return session

    def receive_notification(self, bundle: Dict[str, Any]) -> ClientSession | None:
        """
        Stores a notification bundle with the session owning the subscription it names.
        """
        reference = _subscription_reference(bundle)
        session = self.__find_session_by_subscription(reference) if reference else None
        if session is not None:
            session.notifications.append({"receivedAt": int(time.time() * 1000), "bundle": bundle})

        self.__event_log.push(
            "notification-received",
            f"Notification bundle received from broker for {reference or 'unknown subscription'}",
            resource=bundle,
        )
        return session

    def get_or_create_session(self, patient: PatientDemographics) -> ClientSession:
        key = ClientSession.make_key(patient)
        with self.__lock:
            session = self.__sessions.get(key)
            if session is None:
                session = ClientSession(patient_key=key, patient=patient)
                self.__sessions[key] = session
            return session

    def get_session(self, patient: PatientDemographics) -> ClientSession | None:
        with self.__lock:
            return self.__sessions.get(ClientSession.make_key(patient))

    def sessions(self) -> List[ClientSession]:
        with self.__lock:
            return list(self.__sessions.values())

    def __authenticate_and_subscribe(self, session: ClientSession) -> None:
        if session.permission_ticket is None:
            self.__record_error(session, "No permission ticket available")
            return

        session.client_assertion = self.__ticket_authority.issue_client_assertion(
            self.__client_id, self.__broker_audience, session.permission_ticket
        )
        self.__event_log.push(
            "client-assertion-created",
            "Client assertion created with embedded permission ticket",
            client_assertion=session.client_assertion,
        )

        try:
            result = self.__broker_api.exchange_token(session.client_assertion)
        except (HTTPException, RequestException) as e:
            self.__record_error(session, f"Auth failed: {e}")
            return

        if isinstance(result, Rejection):
            self.__record_error(
                session, f"Auth failed: {result.error_description or result.error}"
            )
            return

        # The broker's patient id is only known from here on
        session.token = ClientToken(access_token=result.access_token, patient=result.patient)
        self.__event_log.push(
            "authenticated",
            f"Authenticated to broker - patient context: {result.patient}",
            patient=result.patient,
        )

        try:
            subscription = self.__broker_api.authorized(result.access_token).create_subscription(
                result.patient, self.__notification_endpoint
            )
        except (HTTPException, RequestException) as e:
            self.__record_error(session, f"Subscribe failed: {e}")
            return

        session.subscriptions.append(subscription)
        self.__event_log.push(
            "subscribed",
            f"Subscription {subscription.get('id')} created - monitoring encounters for {result.patient}",
            resource=subscription,
        )

    def __find_session_by_subscription(self, reference: str) -> ClientSession | None:
        with self.__lock:
            for session in self.__sessions.values():
                for subscription in session.subscriptions:
                    if reference == f"Subscription/{subscription.get('id')}":
                        return session
        return None

    def __record_error(self, session: ClientSession, message: str) -> None:
        logger.warning("Client flow for %s failed: %s", session.patient_key, message)
        session.errors.append(message)
        self.__event_log.push("error", message)


def _subscription_reference(bundle: Dict[str, Any]) -> str | None:
    entries = bundle.get("entry") or []
    if len(entries) == 0 or not isinstance(entries[0], dict):
        return None

    status = entries[0].get("resource") or {}
    reference = (status.get("subscription") or {}).get("reference")
    return reference if isinstance(reference, str) else None
