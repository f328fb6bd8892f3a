from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from requests import JSONDecodeError

from fhir_broker.models.auth.dto import Rejection, TokenResponse
from fhir_broker.models.fanout.dto import ClinicalEvent
from fhir_broker.services.api.broker_api import JWT_BEARER_ASSERTION, BrokerApi

PATCHED_MODULE = "fhir_broker.services.api.api_service.request"


def mock_response(status_code: int, body: object) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = str(body)
    return response


@patch(PATCHED_MODULE)
def test_register_patient(mock_request: MagicMock, broker_api: BrokerApi) -> None:
    mock_request.return_value = mock_response(200, {"brokerId": "broker-abc", "sourceId": "m-1"})

    broker_id = broker_api.register_patient("m-1", "Alice Smith", "1987-04-12")

    assert broker_id == "broker-abc"
    kwargs = mock_request.call_args[1]
    assert kwargs["url"] == "http://broker.test/broker/register-patient"
    assert kwargs["json"] == {"sourceId": "m-1", "name": "Alice Smith", "birthDate": "1987-04-12"}
    assert "Authorization" not in kwargs["headers"]


@patch(PATCHED_MODULE)
def test_emit_event_uses_wire_names(mock_request: MagicMock, broker_api: BrokerApi) -> None:
    mock_request.return_value = mock_response(200, {"matched": False, "reason": "unmapped-patient"})

    result = broker_api.emit_event(
        ClinicalEvent(patient="m-1", resource="Encounter/enc-1", data_source_base="http://ehr")
    )

    assert result["reason"] == "unmapped-patient"
    assert mock_request.call_args[1]["json"] == {
        "eventType": "encounter-start",
        "patient": "m-1",
        "encounter": "Encounter/enc-1",
        "dataSourceBase": "http://ehr",
    }


@patch(PATCHED_MODULE)
def test_exchange_token_success(mock_request: MagicMock, broker_api: BrokerApi) -> None:
    mock_request.return_value = mock_response(
        200,
        {
            "access_token": "token",
            "token_type": "bearer",
            "expires_in": 3600,
            "patient": "broker-abc",
            "scope": "patient/Encounter.rs",
        },
    )

    result = broker_api.exchange_token("assertion")

    assert isinstance(result, TokenResponse)
    assert result.patient == "broker-abc"
    kwargs = mock_request.call_args[1]
    assert kwargs["url"] == "http://broker.test/broker/auth/token"
    assert kwargs["data"]["client_assertion"] == "assertion"
    assert kwargs["data"]["client_assertion_type"] == JWT_BEARER_ASSERTION
    assert kwargs["data"]["grant_type"] == "client_credentials"


@patch(PATCHED_MODULE)
def test_exchange_token_rejection(mock_request: MagicMock, broker_api: BrokerApi) -> None:
    mock_request.return_value = mock_response(
        400, {"error": "invalid_grant", "error_description": "No patient match"}
    )

    result = broker_api.exchange_token("assertion")

    assert result == Rejection(error="invalid_grant", error_description="No patient match")


@patch(PATCHED_MODULE)
def test_create_subscription_sends_bearer_token(
    mock_request: MagicMock, broker_api: BrokerApi
) -> None:
    mock_request.return_value = mock_response(201, {"resourceType": "Subscription", "id": "sub-1"})

    result = broker_api.authorized("access-token").create_subscription(
        "broker-abc", "http://client/notifications"
    )

    assert result["id"] == "sub-1"
    kwargs = mock_request.call_args[1]
    assert kwargs["headers"]["Authorization"] == "Bearer access-token"
    assert kwargs["headers"]["Content-Type"] == "application/fhir+json"
    assert kwargs["json"]["criteria"] == "Encounter?patient=Patient/broker-abc"
    assert kwargs["json"]["channel"]["endpoint"] == "http://client/notifications"


@patch(PATCHED_MODULE)
def test_error_status_raises_bad_gateway(mock_request: MagicMock, broker_api: BrokerApi) -> None:
    mock_request.return_value = mock_response(500, {"detail": "boom"})

    with pytest.raises(HTTPException) as e:
        broker_api.register_patient("m-1", "Alice Smith", "1987-04-12")

    assert e.value.status_code == 502


@patch(PATCHED_MODULE)
def test_invalid_json_raises_bad_gateway(mock_request: MagicMock, broker_api: BrokerApi) -> None:
    response = mock_response(200, None)
    response.json.side_effect = JSONDecodeError("Expecting value", "", 0)
    mock_request.return_value = response

    with pytest.raises(HTTPException) as e:
        broker_api.register_patient("m-1", "Alice Smith", "1987-04-12")

    assert e.value.status_code == 502
