# mypy: ignore-errors
"""Tests for the federated submission endpoints."""

from decimal import Decimal

import pytest
from fastapi import status

from launchpad_federation.core.settings import settings

SUBMISSION = {
    "url": "https://product.example",
    "owner_ref": "user-1",
    "title": "Product",
    "tags": ["tools"],
}


def _target(instance_url, directory_id, amount="0"):
    return {
        "instance_url": instance_url,
        "directory_id": directory_id,
        "fee": {"amount": amount, "currency": "USD"},
    }


@pytest.fixture
def partners(make_instance, partner_network):
    """Three registered partners; only a.example/main costs money."""
    for base_url in ("https://a.example", "https://b.example", "https://c.example"):
        make_instance(base_url)
        partner_network.directories[base_url] = [{"id": "free"}]
    partner_network.directories["https://a.example"].append(
        {"id": "main", "fee": {"amount": "5", "currency": "USD"}}
    )
    return partner_network


def test_discover_directories(client, override_partners, make_instance, partner_network) -> None:
    make_instance("https://a.example")
    make_instance("https://b.example")
    partner_network.directories["https://a.example"] = [
        {"id": "main", "name": "Main", "category": "tools", "fee": {"amount": "5"}}
    ]
    partner_network.down.add("https://b.example")

    response = client.get("/api/v1/federated-submissions/directories")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert len(data) == 1
    assert data[0]["directory_id"] == "main"
    assert data[0]["instance_url"] == "https://a.example"
    assert Decimal(data[0]["fee"]["amount"]) == Decimal("5")


def test_calculate_cost(client) -> None:
    response = client.post(
        "/api/v1/federated-submissions/calculate-cost",
        json={
            "directories": [
                _target("https://a.example", "main", "5"),
                _target("https://b.example", "free", "0"),
            ]
        },
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert Decimal(data["total"]) == Decimal("5")
    assert data["currency"] == "USD"
    assert data["requires_payment"] is True
    assert [item["directory_id"] for item in data["items"]] == ["main", "free"]


def test_calculate_cost_rejects_empty_selection(client) -> None:
    response = client.post(
        "/api/v1/federated-submissions/calculate-cost", json={"directories": []}
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_create_paid_submission_returns_checkout(client, override_partners, partners) -> None:
    response = client.post(
        "/api/v1/federated-submissions/",
        json={
            "submission": SUBMISSION,
            "directories": [
                _target("https://a.example", "main", "5"),
                _target("https://b.example", "free", "0"),
            ],
        },
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["requires_payment"] is True
    assert data["payment_session_id"] == "sess_123"
    assert data["checkout_url"] == "https://pay.example/checkout/sess_123"
    assert data["federated_submission"]["status"] == "pending_payment"
    assert Decimal(data["cost"]["total"]) == Decimal("5")
    assert data["outcomes"] == []

    federated_id = data["federated_submission"]["id"]
    report = client.get(f"/api/v1/federated-submissions/{federated_id}/status").json()
    assert report["summary"]["total_directories"] == 2
    assert report["summary"]["pending_count"] == 2

    dispatch = client.post(f"/api/v1/federated-submissions/{federated_id}/dispatch")
    assert dispatch.status_code == status.HTTP_402_PAYMENT_REQUIRED

    confirmed = client.post(f"/api/v1/federated-submissions/{federated_id}/payment-confirmed")
    assert confirmed.status_code == status.HTTP_200_OK
    assert confirmed.json()["status"] == "submitted"
    assert confirmed.json()["summary"] == {"total": 2, "successful": 2, "failed": 0}


def test_create_free_submission_dispatches(client, override_partners, partners) -> None:
    response = client.post(
        "/api/v1/federated-submissions/",
        json={"submission": SUBMISSION, "directories": [_target("https://a.example", "free")]},
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["requires_payment"] is False
    assert data["federated_submission"]["status"] == "submitted"
    assert data["outcomes"][0]["ok"] is True
    assert data["outcomes"][0]["remote_submission_id"]


def test_create_submission_with_invalid_url(client, override_partners) -> None:
    response = client.post(
        "/api/v1/federated-submissions/",
        json={
            "submission": {**SUBMISSION, "url": "not-a-url"},
            "directories": [_target("https://a.example", "main")],
        },
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"] == "Invalid URL format"


def test_partial_dispatch_then_retry(client, override_partners, partners, partner_network) -> None:
    partner_network.submit_behaviour["https://b.example"] = "error"
    created = client.post(
        "/api/v1/federated-submissions/",
        json={
            "submission": SUBMISSION,
            "directories": [
                _target("https://a.example", "free"),
                _target("https://b.example", "free"),
                _target("https://c.example", "free"),
            ],
        },
    ).json()
    federated_id = created["federated_submission"]["id"]
    assert created["federated_submission"]["status"] == "partially_submitted"

    redispatch = client.post(f"/api/v1/federated-submissions/{federated_id}/dispatch")
    assert redispatch.status_code == status.HTTP_207_MULTI_STATUS
    body = redispatch.json()
    assert body["status"] == "partially_submitted"
    assert [r["skipped"] for r in body["results"]] == [True, False, True]
    assert body["summary"] == {"total": 3, "successful": 2, "failed": 1}

    partner_network.submit_behaviour.clear()
    retried = client.post(f"/api/v1/federated-submissions/{federated_id}/retry")
    assert retried.status_code == status.HTTP_200_OK
    assert retried.json()["status"] == "submitted"
    assert [r["instance_url"] for r in retried.json()["results"]] == ["https://b.example"]

    report = client.get(f"/api/v1/federated-submissions/{federated_id}/status")
    assert report.status_code == status.HTTP_200_OK
    data = report.json()
    assert data["federated_submission"]["status"] == "submitted"
    assert data["summary"]["total_directories"] == 3
    assert data["summary"]["submitted_count"] == 3
    retried_result = next(r for r in data["results"] if r["instance_url"] == "https://b.example")
    assert retried_result["retry_count"] == 1


def test_status_of_unknown_submission(client) -> None:
    response = client.get("/api/v1/federated-submissions/99999/status")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_dispatch_unknown_submission(client, override_partners) -> None:
    response = client.post("/api/v1/federated-submissions/99999/dispatch")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_create_refuses_target_whose_listing_is_down(
    client, override_partners, partners, payment_gateway
) -> None:
    partners.down.add("https://a.example")

    response = client.post(
        "/api/v1/federated-submissions/",
        json={"submission": SUBMISSION, "directories": [_target("https://a.example", "main")]},
    )

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert "try again later" in response.json()["detail"]
    payment_gateway.create_session.assert_not_awaited()
    assert partners.submissions_to("https://a.example") == []


def test_create_refuses_unregistered_instance(client, override_partners, partners) -> None:
    response = client.post(
        "/api/v1/federated-submissions/",
        json={"submission": SUBMISSION, "directories": [_target("https://z.example", "main")]},
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"] == "Unknown or inactive instance: https://z.example"


def test_fee_without_currency_uses_configured_default(client, mocker) -> None:
    mocker.patch.object(settings, "default_currency", "EUR")

    response = client.post(
        "/api/v1/federated-submissions/calculate-cost",
        json={
            "directories": [
                {"instance_url": "https://a.example", "directory_id": "main",
                 "fee": {"amount": "5"}},
                {"instance_url": "https://b.example", "directory_id": "main",
                 "fee": {"amount": "2", "currency": "EUR"}},
            ]
        },
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["currency"] == "EUR"
    assert Decimal(response.json()["total"]) == Decimal("7")
