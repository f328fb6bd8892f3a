from typing import Any, Dict
from collections.abc import Generator
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
import inject
import pytest

from fhir_broker.application import create_fastapi_app
from fhir_broker.config import reset_config, set_config
from fhir_broker.services.auth.permission_ticket_authority import PermissionTicketAuthority
from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.identity.identity_ledger import IdentityLedger
from fhir_broker.services.subscription.subscription_registry import SubscriptionRegistry
from fhir_broker.stats import reset_stats
from tests.test_config import get_test_config

PATCHED_REQUEST = "fhir_broker.services.api.api_service.request"


@pytest.fixture
def fastapi_app() -> Generator[FastAPI, None, None]:
    set_config(get_test_config())
    app = create_fastapi_app()
    yield app
    inject.clear()
    reset_stats()
    reset_config()


@pytest.fixture
def api_client(fastapi_app: FastAPI) -> TestClient:
    return TestClient(fastapi_app)


@pytest.fixture
def routed_api_client(api_client: TestClient) -> Generator[TestClient, None, None]:
    """
    Sends the HTTP calls the services make to each other back into the app under test.
    """

    def forward(
        method: str,
        url: str,
        headers: Dict[str, Any] | None = None,
        timeout: int | None = None,
        json: Dict[str, Any] | None = None,
        data: Dict[str, Any] | None = None,
        auth: Any = None,
    ) -> Any:
        return api_client.request(method, url, headers=headers, json=json, data=data)

    with patch(PATCHED_REQUEST, side_effect=forward):
        yield api_client


@pytest.fixture
def event_log() -> EventLog:
    return EventLog("test", max_entries=100)


@pytest.fixture
def identity_ledger(event_log: EventLog) -> IdentityLedger:
    return IdentityLedger(event_log)


@pytest.fixture
def subscription_registry(event_log: EventLog) -> SubscriptionRegistry:
    return SubscriptionRegistry(event_log)


@pytest.fixture
def ticket_authority(
    identity_ledger: IdentityLedger, event_log: EventLog
) -> PermissionTicketAuthority:
    return PermissionTicketAuthority(
        identity_ledger=identity_ledger,
        event_log=event_log,
        signing_key="test-signing-key",
        ticket_issuer="https://idp.test",
        network_audience="https://network.test",
        default_scopes=["patient/Encounter.rs"],
    )


@pytest.fixture
def alice_demographics() -> Dict[str, str]:
    return {"name": "Alice Smith", "birthDate": "1987-04-12"}
