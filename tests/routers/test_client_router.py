from typing import Dict

from fastapi.testclient import TestClient


def test_quick_auth_without_registered_patient_fails(
    routed_api_client: TestClient, alice_demographics: Dict[str, str]
) -> None:
    response = routed_api_client.post("/client/quick-auth", json={"patient": alice_demographics})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["patient"] is None
    assert body["errors"] == ["Auth failed: No patient match"]


def test_quick_auth_subscribes(
    routed_api_client: TestClient, alice_demographics: Dict[str, str]
) -> None:
    broker_id = routed_api_client.post(
        "/mercy-ehr/register-patient", json=alice_demographics
    ).json()["brokerId"]

    body = routed_api_client.post(
        "/client/quick-auth", json={"patient": alice_demographics}
    ).json()

    assert body["ok"] is True
    assert body["patient"] == broker_id
    assert body["subscriptions"][0]["criteria"] == f"Encounter?patient=Patient/{broker_id}"
    assert (
        body["subscriptions"][0]["channel"]["endpoint"] == "http://testserver/client/notifications"
    )


def test_notifications_for_unknown_subscription(api_client: TestClient) -> None:
    response = api_client.post(
        "/client/notifications", json={"resourceType": "Bundle", "type": "history"}
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True, "matched": False}


def test_state_for_unknown_patient(api_client: TestClient) -> None:
    response = api_client.get("/client/state", params={"name": "Nobody", "birthDate": "2000-01-01"})

    assert response.status_code == 404


def test_state_lists_sessions(
    routed_api_client: TestClient, alice_demographics: Dict[str, str]
) -> None:
    routed_api_client.post("/client/quick-auth", json={"patient": alice_demographics})

    body = routed_api_client.get("/client/state").json()

    assert len(body["sessions"]) == 1
    assert body["sessions"][0]["patient_key"] == "Alice Smith|1987-04-12"
    assert body["eventCount"] >= 1
