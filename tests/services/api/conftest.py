from typing import Any, Dict

import pytest

from fhir_broker.services.api.api_service import HttpService
from fhir_broker.services.api.authenticators.authenticator import Authenticator
from fhir_broker.services.api.broker_api import BrokerApi

MOCK_AUTH_HEADER = "Bearer some-token"


class MockAuthenticator(Authenticator):
    """
    Dummy class for testing purposes only
    """

    def get_authentication_header(self) -> str:
        return MOCK_AUTH_HEADER

    def get_auth(self) -> Any:
        return None


@pytest.fixture()
def base_url() -> str:
    return "http://example.com"


@pytest.fixture()
def mock_sub_route() -> str:
    return "some-route"


@pytest.fixture()
def mock_params() -> Dict[str, Any]:
    return {"param": "example"}


@pytest.fixture()
def mock_body() -> Dict[str, Any]:
    return {"example": "some data"}


@pytest.fixture()
def http_service(base_url: str) -> HttpService:
    return HttpService(base_url=base_url, timeout=1, retries=1, backoff=0.01)


@pytest.fixture()
def mock_authenticator() -> MockAuthenticator:
    return MockAuthenticator()


@pytest.fixture()
def broker_api() -> BrokerApi:
    return BrokerApi(base_url="http://broker.test/broker", timeout=1, retries=1, backoff=0.01)
