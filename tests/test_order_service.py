"""Order lifecycle use cases against a real database."""
import uuid

import pytest
from sqlalchemy import select

from app.models import Order, Product
from app.schemas.auth import Actor, UserRole
from app.schemas.checkout import CartLineInput, CheckoutRequest
from app.services import order_state_machine as osm
from app.services.checkout_service import CheckoutService
from app.services.dispute_service import DisputeService
from app.services.exceptions import (
    CheckoutError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    NotAuthorizedForOrderError,
    OrderNotFoundError,
)
from app.services.order_service import OrderService, generate_tracking_number
from tests.conftest import TO_DELIVERED, advance


async def stock_of(db, product_id):
    return await db.scalar(select(Product.stock).where(Product.id == product_id))


class TestTrackingNumber:
    def test_prefix_and_monotonic(self):
        numbers = [generate_tracking_number() for _ in range(50)]

        assert all(n.startswith("KZ") for n in numbers)
        values = [int(n[2:]) for n in numbers]
        assert values == sorted(set(values))

    def test_custom_prefix(self):
        assert generate_tracking_number("TST").startswith("TST")


class TestOrderCreation:
    async def test_initial_histories(self, placed_order):
        assert placed_order.status == "confirmed"
        assert len(placed_order.status_history) == 1
        assert placed_order.status_history[0].changed_by == "Customer: Awa"

        event = placed_order.tracking_events[0]
        assert event.status == "confirmed"
        assert event.location == "System"
        assert event.details == "Order placed"

    async def test_stock_taken(self, db, catalog, placed_order):
        assert await stock_of(db, catalog["wax"].id) == 3


class TestStatusUpdates:
    async def test_seller_prepares_order(self, db, placed_order, seller):
        order = await OrderService(db).update_status(placed_order.id, "ready-for-pickup", seller)
        assert order.status == "ready-for-pickup"
        assert order.status_history[-1].changed_by == "Seller: Jean"

    async def test_invalid_transition(self, db, placed_order, seller):
        with pytest.raises(InvalidTransitionError):
            await OrderService(db).update_status(placed_order.id, "delivered", seller)

    async def test_seller_outside_order(self, db, placed_order):
        other = Actor(id=uuid.uuid4(), name="Luc", role=UserRole.SELLER, shop_name="Maison Bastos")
        with pytest.raises(NotAuthorizedForOrderError):
            await OrderService(db).update_status(placed_order.id, "ready-for-pickup", other)

    async def test_refund_statuses_refused(self, db, placed_order, customer, seller, admin):
        await advance(db, placed_order, *TO_DELIVERED)
        service = OrderService(db)

        with pytest.raises(NotAuthorizedForOrderError):
            await service.update_status(placed_order.id, "refund-requested", seller)

        await DisputeService(db).request_refund(placed_order.id, "Tissu abîmé", [], customer)
        await db.commit()

        for actor, status in ((seller, "refunded"), (seller, "returned"), (admin, "refunded")):
            with pytest.raises(NotAuthorizedForOrderError):
                await service.update_status(placed_order.id, status, actor)
        assert placed_order.status == "refund-requested"

    async def test_unknown_order(self, db, admin):
        with pytest.raises(OrderNotFoundError):
            await OrderService(db).update_status(uuid.uuid4(), "ready-for-pickup", admin)


class TestCancellation:
    async def test_cancel_restores_stock(self, db, catalog, placed_order, customer):
        order = await OrderService(db).cancel_order(placed_order.id, customer)
        await db.commit()

        assert order.status == "cancelled"
        assert await stock_of(db, catalog["wax"].id) == 5

    async def test_cannot_cancel_after_pickup(self, db, placed_order, customer):
        await advance(db, placed_order, "ready-for-pickup", "picked-up")
        with pytest.raises(InvalidTransitionError):
            await OrderService(db).cancel_order(placed_order.id, customer)

    async def test_cancel_limited_even_when_not_strict(self, db, placed_order, customer, strict_transitions):
        strict_transitions(False)
        await advance(db, placed_order, "ready-for-pickup", "picked-up")
        with pytest.raises(InvalidTransitionError):
            await OrderService(db).cancel_order(placed_order.id, customer)


class TestDepot:
    async def test_check_in_with_note(self, db, placed_order, depot_agent):
        await advance(db, placed_order, "ready-for-pickup", "picked-up")

        order = await OrderService(db).check_in_at_depot(
            placed_order.tracking_number, depot_agent, "A-12", notes="Carton humide"
        )

        assert order.status == "at-depot"
        assert order.storage_location_id == "A-12"
        assert order.checked_in_by == depot_agent.id
        assert order.discrepancy["reason"] == "Note at check-in: Carton humide"
        assert order.tracking_events[-1].location == "DEPOT-DLA"
        assert order.status_history[-1].changed_by == "Depot Agent: Paul"

    async def test_check_in_requires_pickup(self, db, placed_order, depot_agent):
        with pytest.raises(InvalidTransitionError):
            await OrderService(db).check_in_at_depot(placed_order.tracking_number, depot_agent, "A-12")

    async def test_home_delivery_departure(self, db, placed_order, depot_agent):
        await advance(db, placed_order, "ready-for-pickup", "picked-up", "at-depot")
        order = await OrderService(db).process_depot_departure(placed_order.tracking_number, depot_agent)

        assert order.status == "out-for-delivery"
        assert order.departure_processed_by == depot_agent.id

    async def test_departure_requires_parcel_at_depot(self, db, placed_order, depot_agent):
        with pytest.raises(InvalidTransitionError):
            await OrderService(db).process_depot_departure(placed_order.tracking_number, depot_agent)

    async def test_pickup_hand_over(self, db, catalog, customer, depot_agent):
        request = CheckoutRequest(
            items=[CartLineInput(product_id=catalog["wax"].id, quantity=1)],
            delivery_method="pickup",
            pickup_point_id="PP-AKWA",
        )
        placed = await CheckoutService(db).place_order(request, customer)
        await db.commit()
        assert placed.delivery_fee == 0

        await advance(db, placed, "ready-for-pickup", "picked-up", "at-depot")
        service = OrderService(db)

        with pytest.raises(CheckoutError):
            await service.process_depot_departure(placed.tracking_number, depot_agent)

        order = await service.process_depot_departure(
            placed.tracking_number, depot_agent, recipient_name="Awa Nkongo", recipient_id="CNI-118"
        )
        assert order.status == "delivered"
        assert order.pickup_recipient_name == "Awa Nkongo"
        assert order.pickup_recipient_id == "CNI-118"

    async def test_discrepancy(self, db, placed_order, depot_agent):
        await advance(db, placed_order, "ready-for-pickup", "picked-up", "at-depot")
        order = await OrderService(db).report_discrepancy(placed_order.tracking_number, depot_agent, "Colis écrasé")

        assert order.status == "depot-issue"
        assert order.discrepancy["reason"] == "Colis écrasé"

    async def test_unknown_tracking_number(self, db, depot_agent):
        with pytest.raises(OrderNotFoundError):
            await OrderService(db).report_discrepancy("KZ0", depot_agent, "Introuvable")


class TestDeliveryAgent:
    async def test_assigned_agent_delivers(self, db, placed_order, admin, delivery_agent):
        service = OrderService(db)
        await service.assign_agent(placed_order.id, delivery_agent.id, admin)
        await advance(db, placed_order, "ready-for-pickup")

        for status in ("picked-up", "at-depot", "out-for-delivery", "delivered"):
            order = await service.delivery_agent_update(placed_order.id, delivery_agent, status)

        assert order.status == "delivered"
        assert order.tracking_events[-1].details == "Status updated by delivery agent Ibrahim"

    async def test_failed_delivery_needs_reason(self, db, placed_order, admin, delivery_agent):
        service = OrderService(db)
        await service.assign_agent(placed_order.id, delivery_agent.id, admin)
        await advance(db, placed_order, "ready-for-pickup", "picked-up", "at-depot", "out-for-delivery")

        with pytest.raises(InvalidTransitionError):
            await service.delivery_agent_update(placed_order.id, delivery_agent, "delivery-failed")

        order = await service.delivery_agent_update(
            placed_order.id, delivery_agent, "delivery-failed",
            details="Personne au domicile", failure_reason="client-absent",
        )
        assert order.status == "delivery-failed"
        assert order.delivery_failure_reason["reason"] == "client-absent"
        assert order.delivery_failure_reason["details"] == "Personne au domicile"

    async def test_unassigned_agent_refused(self, db, placed_order, delivery_agent):
        with pytest.raises(NotAuthorizedForOrderError):
            await OrderService(db).delivery_agent_update(placed_order.id, delivery_agent, "picked-up")

    async def test_agent_cannot_cancel(self, db, placed_order, admin, delivery_agent):
        service = OrderService(db)
        await service.assign_agent(placed_order.id, delivery_agent.id, admin)
        with pytest.raises(InvalidTransitionError):
            await service.delivery_agent_update(placed_order.id, delivery_agent, "cancelled")

    async def test_missions(self, db, placed_order, admin, delivery_agent):
        service = OrderService(db)
        await service.assign_agent(placed_order.id, delivery_agent.id, admin)
        await advance(db, placed_order, "ready-for-pickup")

        missions = await service.list_agent_missions(delivery_agent.id)
        assert [o.id for o in missions] == [placed_order.id]

    async def test_no_agent_on_closed_order(self, db, placed_order, customer, admin, delivery_agent):
        service = OrderService(db)
        await service.cancel_order(placed_order.id, customer)
        with pytest.raises(InvalidTransitionError):
            await service.assign_agent(placed_order.id, delivery_agent.id, admin)


class TestConcurrency:
    async def test_stale_write_is_rejected(self, session_factory, placed_order, seller, admin):
        async with session_factory() as first, session_factory() as second:
            stale = await OrderService(second).get_order(placed_order.id)

            await OrderService(first).update_status(placed_order.id, "ready-for-pickup", seller)
            await first.commit()

            osm.record_transition(stale, "cancelled", admin.label)
            with pytest.raises(ConcurrentUpdateError):
                await OrderService(second).save(stale)
            await second.rollback()

        async with session_factory() as check:
            status = await check.scalar(select(Order.status).where(Order.id == placed_order.id))
        assert status == "ready-for-pickup"

    async def test_version_increases_on_each_write(self, db, placed_order, seller):
        version = placed_order.version
        order = await OrderService(db).update_status(placed_order.id, "ready-for-pickup", seller)
        assert order.version == version + 1
