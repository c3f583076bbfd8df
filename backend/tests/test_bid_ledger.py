"""
Bid ledger tests.

Covers the bid state machine, validation order and notifications.
"""

import pytest
from sqlalchemy import select, update

from backend.app.core.exceptions import AppException
from backend.app.models.bid import Bid
from backend.app.models.bid_enums import BidStatus
from backend.app.models.package import Package
from backend.app.models.package_enums import PackageStatus
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus
from backend.app.schemas.bid import BidFilters, BidUpdate
from backend.app.services.notification_service import BID_ACCEPTED, BID_RECEIVED, BID_REJECTED


async def _fetch(session_factory, model, obj_id):
    async with session_factory() as session:
        return await session.get(model, obj_id)


async def _bid_statuses(session_factory, package_id):
    async with session_factory() as session:
        result = await session.execute(select(Bid).where(Bid.package_id == package_id))
        return {b.id: b.status for b in result.scalars().all()}


@pytest.fixture
async def marketplace(factory):
    customer = await factory.customer()
    driver = await factory.driver()
    package = await factory.package(customer, price_offered=60.0)
    return customer, driver, package


async def test_create_bid_returns_commission(marketplace, bid_ledger, notifier, recording_sink):
    customer, driver, package = marketplace

    bid = await bid_ledger.create_bid(package.id, driver.id, 100.0, message="Can pick up today")

    assert bid.status == BidStatus.PENDING
    assert bid.commission_amount == 30.0
    assert bid.driver_earnings == 70.0
    assert bid.platform_fee == 30.0

    await notifier.join()
    received = recording_sink.of_type(BID_RECEIVED)
    assert len(received) == 1
    assert received[0].user_id == customer.id
    assert received[0].bid_id == bid.id
    assert received[0].amount == 100.0


@pytest.mark.parametrize("amount", [0, 0.5, 10000.01, -5])
async def test_create_bid_amount_out_of_range(marketplace, bid_ledger, amount):
    _, driver, package = marketplace
    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, driver.id, amount)
    assert exc_info.value.error_code == "VALIDATION_ERROR"
    assert exc_info.value.status_code == 400


async def test_create_bid_amount_bounds_inclusive(factory, marketplace, bid_ledger):
    customer, driver, package = marketplace
    other_driver = await factory.driver()

    low = await bid_ledger.create_bid(package.id, driver.id, 1)
    high = await bid_ledger.create_bid(package.id, other_driver.id, 10000)

    assert low.amount == 1
    assert high.amount == 10000


async def test_create_bid_package_checks(factory, marketplace, bid_ledger):
    customer, driver, _ = marketplace
    taken = await factory.package(customer, status=PackageStatus.ACCEPTED)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(9999, driver.id, 50)
    assert exc_info.value.error_code == "PACKAGE_NOT_FOUND"

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(taken.id, driver.id, 50)
    assert exc_info.value.error_code == "PACKAGE_NOT_AVAILABLE"


async def test_create_bid_driver_checks(factory, marketplace, bid_ledger):
    customer, _, package = marketplace
    no_profile = await factory.driver(with_profile=False)
    unverified = await factory.driver(identity_verified=False)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, no_profile.id, 50)
    assert exc_info.value.error_code == "DRIVER_NOT_FOUND"
    assert exc_info.value.status_code == 404

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, unverified.id, 50)
    assert exc_info.value.error_code == "DRIVER_NOT_VERIFIED"
    assert exc_info.value.status_code == 403


async def test_cannot_bid_on_own_package(factory, bid_ledger):
    # A driver who also ships packages
    driver = await factory.driver()
    package = await factory.package(driver)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, driver.id, 50)
    assert exc_info.value.error_code == "INVALID_BID"


async def test_create_bid_trip_checks(factory, marketplace, bid_ledger):
    _, driver, package = marketplace
    other_driver = await factory.driver()
    foreign_trip = await factory.trip(other_driver)
    finished_trip = await factory.trip(driver, status=TripStatus.COMPLETED)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, driver.id, 50, trip_id=9999)
    assert exc_info.value.error_code == "TRIP_NOT_FOUND"

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, driver.id, 50, trip_id=foreign_trip.id)
    assert exc_info.value.error_code == "INVALID_TRIP"

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, driver.id, 50, trip_id=finished_trip.id)
    assert exc_info.value.error_code == "TRIP_NOT_AVAILABLE"


async def test_duplicate_pending_bid_rejected(marketplace, bid_ledger):
    _, driver, package = marketplace
    await bid_ledger.create_bid(package.id, driver.id, 50)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.create_bid(package.id, driver.id, 45)
    assert exc_info.value.error_code == "DUPLICATE_BID"


async def test_rebid_allowed_after_cancel(marketplace, bid_ledger):
    _, driver, package = marketplace
    first = await bid_ledger.create_bid(package.id, driver.id, 50)
    await bid_ledger.cancel_bid(first.id, driver.id)

    second = await bid_ledger.create_bid(package.id, driver.id, 45)
    assert second.id != first.id


async def test_accept_bid_rejects_siblings(factory, marketplace, bid_ledger, session_factory,
                                           notifier, recording_sink):
    customer, driver, package = marketplace
    rival = await factory.driver()
    trip = await factory.trip(driver)
    winner = await bid_ledger.create_bid(package.id, driver.id, 55, trip_id=trip.id)
    loser = await bid_ledger.create_bid(package.id, rival.id, 50)

    accepted = await bid_ledger.accept_bid(winner.id, customer.id)

    assert accepted.status == BidStatus.ACCEPTED
    assert await _bid_statuses(session_factory, package.id) == {
        winner.id: BidStatus.ACCEPTED,
        loser.id: BidStatus.REJECTED,
    }
    assert (await _fetch(session_factory, Package, package.id)).status == PackageStatus.ACCEPTED
    assert (await _fetch(session_factory, Trip, trip.id)).status == TripStatus.IN_PROGRESS

    await notifier.join()
    assert [e.user_id for e in recording_sink.of_type(BID_ACCEPTED)] == [driver.id]
    rejected = recording_sink.of_type(BID_REJECTED)
    assert [(e.user_id, e.bid_id) for e in rejected] == [(rival.id, loser.id)]


async def test_accept_then_accept_sibling_fails(factory, marketplace, bid_ledger):
    customer, driver, package = marketplace
    rival = await factory.driver()
    b1 = await bid_ledger.create_bid(package.id, driver.id, 55)
    b2 = await bid_ledger.create_bid(package.id, rival.id, 50)

    await bid_ledger.accept_bid(b1.id, customer.id)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.accept_bid(b2.id, customer.id)
    assert exc_info.value.error_code == "BID_NOT_PENDING"


async def test_accept_requires_package_owner(factory, marketplace, bid_ledger, session_factory):
    _, driver, package = marketplace
    stranger = await factory.customer()
    bid = await bid_ledger.create_bid(package.id, driver.id, 55)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.accept_bid(bid.id, stranger.id)
    assert exc_info.value.error_code == "UNAUTHORIZED"
    assert exc_info.value.status_code == 403
    assert (await _fetch(session_factory, Bid, bid.id)).status == BidStatus.PENDING


async def test_accept_fails_when_trip_was_cancelled(factory, marketplace, bid_ledger, session_factory):
    customer, driver, package = marketplace
    trip = await factory.trip(driver)
    bid = await bid_ledger.create_bid(package.id, driver.id, 55, trip_id=trip.id)

    async with session_factory() as session:
        await session.execute(update(Trip).where(Trip.id == trip.id).values(status=TripStatus.CANCELLED))
        await session.commit()

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.accept_bid(bid.id, customer.id)
    assert exc_info.value.error_code == "TRIP_NOT_AVAILABLE"

    # Nothing from the accept transaction survives
    assert (await _fetch(session_factory, Trip, trip.id)).status == TripStatus.CANCELLED
    assert (await _fetch(session_factory, Package, package.id)).status == PackageStatus.PENDING
    assert (await _fetch(session_factory, Bid, bid.id)).status == BidStatus.PENDING


async def test_accept_missing_bid(bid_ledger):
    with pytest.raises(AppException) as exc_info:
        await bid_ledger.accept_bid(4242, 1)
    assert exc_info.value.error_code == "BID_NOT_FOUND"


async def test_reject_bid_appends_reason(marketplace, bid_ledger, notifier, recording_sink):
    customer, driver, package = marketplace
    bid = await bid_ledger.create_bid(package.id, driver.id, 55, message="Fast delivery")

    rejected = await bid_ledger.reject_bid(bid.id, "Too expensive", customer_id=customer.id)

    assert rejected.status == BidStatus.REJECTED
    assert rejected.message == "Fast delivery\nRejection reason: Too expensive"

    await notifier.join()
    assert [e.user_id for e in recording_sink.of_type(BID_REJECTED)] == [driver.id]


async def test_reject_without_message_or_reason(marketplace, bid_ledger):
    _, driver, package = marketplace
    bid = await bid_ledger.create_bid(package.id, driver.id, 55)
    bid_with_reason = await bid_ledger.reject_bid(bid.id, "No thanks")
    assert bid_with_reason.message == "Rejection reason: No thanks"


async def test_reject_requires_package_owner(factory, marketplace, bid_ledger):
    _, driver, package = marketplace
    stranger = await factory.customer()
    bid = await bid_ledger.create_bid(package.id, driver.id, 55)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.reject_bid(bid.id, customer_id=stranger.id)
    assert exc_info.value.error_code == "UNAUTHORIZED"


async def test_terminal_bids_cannot_change(marketplace, bid_ledger):
    customer, driver, package = marketplace
    bid = await bid_ledger.create_bid(package.id, driver.id, 55)
    await bid_ledger.reject_bid(bid.id)

    for action in (
        bid_ledger.reject_bid(bid.id),
        bid_ledger.cancel_bid(bid.id, driver.id),
        bid_ledger.update_bid(bid.id, BidUpdate(amount=60), driver.id),
        bid_ledger.accept_bid(bid.id, customer.id),
    ):
        with pytest.raises(AppException) as exc_info:
            await action
        assert exc_info.value.error_code == "BID_NOT_PENDING"


async def test_cancel_requires_owner(factory, marketplace, bid_ledger):
    _, driver, package = marketplace
    other = await factory.driver()
    bid = await bid_ledger.create_bid(package.id, driver.id, 55)

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.cancel_bid(bid.id, other.id)
    assert exc_info.value.error_code == "UNAUTHORIZED"

    cancelled = await bid_ledger.cancel_bid(bid.id, driver.id)
    assert cancelled.status == BidStatus.CANCELLED


async def test_update_bid(marketplace, bid_ledger):
    _, driver, package = marketplace
    bid = await bid_ledger.create_bid(package.id, driver.id, 55, message="old")

    updated = await bid_ledger.update_bid(bid.id, BidUpdate(amount=48.5), driver.id)
    assert updated.amount == 48.5
    assert updated.message == "old"

    updated = await bid_ledger.update_bid(bid.id, BidUpdate(message="new"), driver.id)
    assert updated.amount == 48.5
    assert updated.message == "new"

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.update_bid(bid.id, BidUpdate(amount=20000), driver.id)
    assert exc_info.value.error_code == "VALIDATION_ERROR"


async def test_get_bids_filters_and_pagination(factory, bid_ledger):
    customer = await factory.customer()
    drivers = [await factory.driver() for _ in range(3)]
    package_a = await factory.package(customer)
    package_b = await factory.package(customer)

    created = []
    for driver in drivers:
        created.append(await bid_ledger.create_bid(package_a.id, driver.id, 20 + driver.id))
    await bid_ledger.create_bid(package_b.id, drivers[0].id, 75)

    bids, total = await bid_ledger.get_bids(BidFilters(package_id=package_a.id, limit=2))
    assert total == 3
    assert len(bids) == 2
    # Newest first
    assert bids[0].id == created[-1].id

    bids, total = await bid_ledger.get_bids(BidFilters(package_id=package_a.id, limit=2, offset=2))
    assert total == 3
    assert [b.id for b in bids] == [created[0].id]

    bids, total = await bid_ledger.get_bids_by_driver(drivers[0].id)
    assert total == 2

    bids, total = await bid_ledger.get_bids(BidFilters(min_amount=70))
    assert [b.package_id for b in bids] == [package_b.id]

    await bid_ledger.cancel_bid(created[1].id, drivers[1].id)
    bids, total = await bid_ledger.get_pending_bids(package_id=package_a.id)
    assert total == 2
    bids, total = await bid_ledger.get_bids_by_package(package_b.id)
    assert total == 1


async def test_get_bid_by_id(marketplace, bid_ledger):
    _, driver, package = marketplace
    bid = await bid_ledger.create_bid(package.id, driver.id, 55)

    fetched = await bid_ledger.get_bid_by_id(bid.id)
    assert fetched.amount == 55

    with pytest.raises(AppException) as exc_info:
        await bid_ledger.get_bid_by_id(bid.id + 100)
    assert exc_info.value.error_code == "BID_NOT_FOUND"


async def test_ledger_commission_matches_domain(bid_ledger):
    result = bid_ledger.calculate_commission(33.33)
    assert result.commission_amount == pytest.approx(9.99)
    assert result.driver_earnings == pytest.approx(23.33)
