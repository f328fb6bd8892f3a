import inject

from fhir_broker.config import get_config
from fhir_broker.services.api.broker_api import BrokerApi
from fhir_broker.services.api.delivery_api import DeliveryApi
from fhir_broker.services.auth.permission_ticket_authority import PermissionTicketAuthority
from fhir_broker.services.client.subscriber_client_service import SubscriberClientService
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.fanout.notification_fanout_service import NotificationFanoutService
from fhir_broker.services.identity.identity_ledger import IdentityLedger
from fhir_broker.services.source.source_system_service import SourceSystemService
from fhir_broker.services.subscription.subscription_registry import SubscriptionRegistry
from fhir_broker.stats import get_stats

BROKER_EVENT_LOG = "broker_event_log"
SOURCE_EVENT_LOG = "source_event_log"
CLIENT_EVENT_LOG = "client_event_log"


def container_config(binder: inject.Binder) -> None:
    config = get_config()
    log_size = config.app.event_log_size

    broker_event_log = EventLog("broker", log_size)
    source_event_log = EventLog("mercy-ehr", log_size)
    client_event_log = EventLog("client", log_size)
    binder.bind(BROKER_EVENT_LOG, broker_event_log)
    binder.bind(SOURCE_EVENT_LOG, source_event_log)
    binder.bind(CLIENT_EVENT_LOG, client_event_log)

    identity_ledger = IdentityLedger(broker_event_log)
    binder.bind(IdentityLedger, identity_ledger)

    subscription_registry = SubscriptionRegistry(broker_event_log)
    binder.bind(SubscriptionRegistry, subscription_registry)

    ticket_authority = PermissionTicketAuthority(
        identity_ledger=identity_ledger,
        event_log=broker_event_log,
        signing_key=config.broker.signing_key,
        ticket_issuer=config.broker.ticket_issuer,
        network_audience=config.broker.network_audience,
        default_scopes=config.broker.default_scopes,
        access_token_lifetime=config.broker.access_token_lifetime_in_sec,  # type: ignore
        ticket_lifetime=config.broker.ticket_lifetime_in_sec,  # type: ignore
        assertion_lifetime=config.broker.assertion_lifetime_in_sec,  # type: ignore
    )
    binder.bind(PermissionTicketAuthority, ticket_authority)

    fanout_service = NotificationFanoutService(
        identity_ledger=identity_ledger,
        subscription_registry=subscription_registry,
        delivery_api=DeliveryApi(
            timeout=config.delivery.timeout,
            content_type=config.delivery.content_type,
        ),
        event_log=broker_event_log,
        stats=get_stats(),
        max_concurrent_deliveries=config.delivery.max_concurrent_deliveries,
    )
    binder.bind(NotificationFanoutService, fanout_service)

    broker_api = BrokerApi(
        base_url=config.services.broker_url,
        timeout=config.services.timeout,
        retries=config.services.retries,
        backoff=config.services.backoff,
    )

    source_service = SourceSystemService(
        broker_api=broker_api,
        event_log=source_event_log,
        base_url=config.services.data_source_url,
    )
    binder.bind(SourceSystemService, source_service)

    client_service = SubscriberClientService(
        ticket_authority=ticket_authority,
        broker_api=broker_api,
        event_log=client_event_log,
        client_id=config.services.client_id,
        broker_audience=config.services.broker_url,
        notification_endpoint=f"{config.services.client_url}/notifications",
    )
    binder.bind(SubscriberClientService, client_service)


def get_identity_ledger() -> IdentityLedger:
    return inject.instance(IdentityLedger)


def get_subscription_registry() -> SubscriptionRegistry:
    return inject.instance(SubscriptionRegistry)


def get_ticket_authority() -> PermissionTicketAuthority:
    return inject.instance(PermissionTicketAuthority)


def get_fanout_service() -> NotificationFanoutService:
    return inject.instance(NotificationFanoutService)


def get_source_service() -> SourceSystemService:
    return inject.instance(SourceSystemService)


def get_client_service() -> SubscriberClientService:
    return inject.instance(SubscriberClientService)


def get_broker_event_log() -> EventLog:
    return inject.instance(BROKER_EVENT_LOG)  # type: ignore


def get_source_event_log() -> EventLog:
    return inject.instance(SOURCE_EVENT_LOG)  # type: ignore


def get_client_event_log() -> EventLog:
    return inject.instance(CLIENT_EVENT_LOG)  # type: ignore


def setup_container() -> None:
    inject.configure(container_config, once=True)
