"""
HTTP API tests.

Exercises routing, role guards, error rendering and the end-to-end
bid and commission flows through the FastAPI app.
"""

import pytest

from backend.app.services.notification_service import DatabaseNotificationSink
from backend.app.core.jwt import create_access_token


def auth_headers(user) -> dict:
    token = create_access_token(data={"sub": user.email, "user_id": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def parties(factory):
    customer = await factory.customer()
    driver = await factory.driver()
    admin = await factory.admin()
    package = await factory.package(customer, price_offered=80.0)
    return customer, driver, admin, package


async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


async def test_correlation_id_is_propagated(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "req-123"})
    assert response.headers["X-Correlation-ID"] == "req-123"


async def test_requests_without_token_are_rejected(client):
    response = await client.get("/v1/bids")
    assert response.status_code in (401, 403)


async def test_invalid_token_is_rejected(client):
    response = await client.get("/v1/bids", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


async def test_inactive_user_is_rejected(client, factory):
    user = await factory.user(is_active=False)
    response = await client.get("/v1/bids", headers=auth_headers(user))
    assert response.status_code == 403


async def test_create_bid_returns_commission(client, parties):
    customer, driver, _, package = parties

    response = await client.post(
        "/v1/bids",
        json={"package_id": package.id, "amount": 100, "message": "Same day"},
        headers=auth_headers(driver),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["driver_id"] == driver.id
    assert body["commission_amount"] == 30.0
    assert body["driver_earnings"] == 70.0


async def test_only_drivers_can_bid(client, parties):
    customer, _, _, package = parties
    response = await client.post(
        "/v1/bids", json={"package_id": package.id, "amount": 40}, headers=auth_headers(customer)
    )
    assert response.status_code == 403


async def test_business_errors_are_rendered(client, parties):
    _, driver, _, _ = parties
    response = await client.post(
        "/v1/bids", json={"package_id": 999, "amount": 40}, headers=auth_headers(driver)
    )

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "PACKAGE_NOT_FOUND"
    assert body["details"]["id"] == 999


async def test_request_validation_errors(client, parties):
    _, driver, _, _ = parties
    response = await client.post("/v1/bids", json={"amount": 40}, headers=auth_headers(driver))
    assert response.status_code == 422
    assert response.json()["error_code"] == "VALIDATION_ERROR"


async def test_accept_flow(client, factory, parties):
    customer, driver, _, package = parties
    rival = await factory.driver()

    b1 = (await client.post(
        "/v1/bids", json={"package_id": package.id, "amount": 60}, headers=auth_headers(driver)
    )).json()
    b2 = (await client.post(
        "/v1/bids", json={"package_id": package.id, "amount": 55}, headers=auth_headers(rival)
    )).json()

    response = await client.post(f"/v1/bids/{b1['id']}/accept", headers=auth_headers(customer))
    assert response.status_code == 200
    assert response.json()["status"] == "ACCEPTED"

    response = await client.get(f"/v1/bids/{b2['id']}", headers=auth_headers(customer))
    assert response.json()["status"] == "REJECTED"

    response = await client.post(f"/v1/bids/{b2['id']}/accept", headers=auth_headers(customer))
    assert response.status_code == 400
    assert response.json()["error_code"] == "BID_NOT_PENDING"


async def test_reject_with_reason(client, parties):
    customer, driver, _, package = parties
    bid = (await client.post(
        "/v1/bids", json={"package_id": package.id, "amount": 60}, headers=auth_headers(driver)
    )).json()

    response = await client.post(
        f"/v1/bids/{bid['id']}/reject", json={"reason": "Too slow"}, headers=auth_headers(customer)
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Rejection reason: Too slow"


async def test_update_and_cancel_bid(client, parties):
    _, driver, _, package = parties
    bid = (await client.post(
        "/v1/bids", json={"package_id": package.id, "amount": 60}, headers=auth_headers(driver)
    )).json()

    response = await client.patch(f"/v1/bids/{bid['id']}", json={"amount": 58}, headers=auth_headers(driver))
    assert response.status_code == 200
    assert response.json()["amount"] == 58

    response = await client.post(f"/v1/bids/{bid['id']}/cancel", headers=auth_headers(driver))
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"


async def test_list_bids(client, factory, parties):
    customer, driver, _, package = parties
    other = await factory.driver()
    for bidder in (driver, other):
        await client.post("/v1/bids", json={"package_id": package.id, "amount": 50}, headers=auth_headers(bidder))

    response = await client.get(
        "/v1/bids", params={"package_id": package.id, "limit": 1}, headers=auth_headers(customer)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert len(body["bids"]) == 1
    assert body["limit"] == 1

    response = await client.get("/v1/bids", params={"status": "ACCEPTED"}, headers=auth_headers(customer))
    assert response.json()["total"] == 0


async def test_matching_endpoints(client, factory, parties):
    customer, driver, _, package = parties
    trip = await factory.trip(driver)
    headers = auth_headers(customer)

    response = await client.post(f"/v1/matching/packages/{package.id}", headers=headers)
    assert response.status_code == 200
    assert [m["trip_id"] for m in response.json()["matches"]] == [trip.id]

    response = await client.post(
        f"/v1/matching/trips/{trip.id}", json={"max_distance": 5}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["criteria"]["max_distance"] == 5
    assert response.json()["total_matches"] == 1

    for strategy in ("basic", "ml"):
        response = await client.post("/v1/matching/optimal", params={"strategy": strategy}, headers=headers)
        assert response.status_code == 200
        assert response.json()["total_matches"] == 1

    response = await client.post("/v1/matching/optimal", params={"strategy": "random"}, headers=headers)
    assert response.status_code == 422

    response = await client.get(f"/v1/matching/packages/{package.id}/recommended-bid", headers=headers)
    assert response.status_code == 200
    assert response.json()["recommended_amount"] == 64.0


async def test_commission_calculate(client, parties):
    _, driver, _, _ = parties
    response = await client.get("/v1/commission/calculate", params={"amount": 33.33}, headers=auth_headers(driver))
    assert response.status_code == 200
    body = response.json()
    assert body["commission_amount"] == 9.99
    assert body["driver_earnings"] == 23.33
    assert body["commission_percentage"] == 30


async def test_reservation_flow(client, factory, parties):
    _, driver, admin, _ = parties
    await factory.wallet(driver, available_balance=100.0)

    response = await client.post(
        "/v1/commission/reservations", json={"commission_amount": 15}, headers=auth_headers(driver)
    )
    assert response.status_code == 201
    reservation = response.json()
    assert reservation["status"] == "PENDING"

    wallet = (await client.get("/v1/commission/wallet", headers=auth_headers(driver))).json()
    assert wallet["reserved_balance"] == 15

    # Drivers cannot collect their own commission
    response = await client.post(
        f"/v1/commission/reservations/{reservation['id']}/confirm", headers=auth_headers(driver)
    )
    assert response.status_code == 403

    response = await client.post(
        f"/v1/commission/reservations/{reservation['id']}/confirm", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    wallet = (await client.get("/v1/commission/wallet", headers=auth_headers(driver))).json()
    assert wallet["reserved_balance"] == 0
    assert wallet["available_balance"] == 100

    response = await client.post(
        f"/v1/commission/reservations/{reservation['id']}/release", headers=auth_headers(admin)
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_RESERVATION_STATUS"


async def test_insufficient_balance_via_api(client, factory, parties):
    _, driver, _, _ = parties
    await factory.wallet(driver, available_balance=10.0)

    response = await client.post(
        "/v1/commission/reservations", json={"commission_amount": 15}, headers=auth_headers(driver)
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "INSUFFICIENT_BALANCE"


async def test_cleanup_requires_admin(client, parties):
    _, driver, admin, _ = parties

    response = await client.post("/v1/commission/reservations/cleanup", headers=auth_headers(driver))
    assert response.status_code == 403

    response = await client.post("/v1/commission/reservations/cleanup", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json() == {"released": 0}


async def test_notification_inbox(client, services, session_factory, parties):
    customer, driver, _, package = parties
    services.notifier.add_sink(DatabaseNotificationSink(session_factory))

    await client.post("/v1/bids", json={"package_id": package.id, "amount": 45}, headers=auth_headers(driver))
    await services.notifier.join()

    response = await client.get("/v1/notifications", headers=auth_headers(customer))
    assert response.status_code == 200
    inbox = response.json()
    assert len(inbox) == 1
    assert inbox[0]["type"] == "BID_RECEIVED"
    assert inbox[0]["event"] == "bid:received"
    assert inbox[0]["is_read"] is False

    response = await client.patch(f"/v1/notifications/{inbox[0]['id']}/read", headers=auth_headers(customer))
    assert response.status_code == 200

    response = await client.get("/v1/notifications", params={"unread_only": True}, headers=auth_headers(customer))
    assert response.json() == []

    response = await client.patch("/v1/notifications/read-all", headers=auth_headers(customer))
    assert response.json()["count"] == 0


async def test_marking_someone_elses_notification(client, parties):
    _, driver, _, _ = parties
    response = await client.patch("/v1/notifications/12345/read", headers=auth_headers(driver))
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOTIFICATION_NOT_FOUND"
