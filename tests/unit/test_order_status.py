"""
Tests for the order status machine, partial updates and listings.
"""
from decimal import Decimal

import pytest

from butik.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InvalidStatusError,
    NoFieldsProvidedError,
    NotFoundError,
)
from butik.models import OrderStatus, VALID_ORDER_TRANSITIONS, can_transition
from butik.services import inventory_ledger
from butik.services.order_service import OrderPatch, OrderService, parse_status


class TestTransitions:

    @pytest.mark.parametrize("current,target,allowed", [
        (OrderStatus.BELUM_BAYAR, OrderStatus.DIKIRIM, True),
        (OrderStatus.BELUM_BAYAR, OrderStatus.DIBATALKAN, True),
        (OrderStatus.BELUM_BAYAR, OrderStatus.SELESAI, False),
        (OrderStatus.DIKIRIM, OrderStatus.SELESAI, True),
        (OrderStatus.DIKIRIM, OrderStatus.BELUM_BAYAR, False),
        (OrderStatus.SELESAI, OrderStatus.DIBATALKAN, False),
        (OrderStatus.DIBATALKAN, OrderStatus.BELUM_BAYAR, False),
    ])
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_every_status_has_an_entry(self):
        assert set(VALID_ORDER_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("raw", ["dikirim", " DIKIRIM ", OrderStatus.DIKIRIM])
    def test_parse_status(self, raw):
        assert parse_status(raw) is OrderStatus.DIKIRIM

    @pytest.mark.parametrize("raw", ["pending", "semua", "", 3, None])
    def test_parse_status_rejects_unknown(self, raw):
        with pytest.raises(InvalidStatusError):
            parse_status(raw)


class TestOrderPatch:

    def test_provided_skips_none(self):
        patch = OrderPatch(shipping_address="Jl. Braga 2")

        assert patch.provided() == {"shipping_address": "Jl. Braga 2"}

    def test_every_field_maps_to_a_column(self):
        assert set(OrderPatch.COLUMNS) == {
            "status", "shipping_method", "shipping_address", "shipping_cost",
        }


@pytest.fixture
async def order(db, make_user, make_product):
    user = await make_user()
    product = await make_product(stock=5)
    return await OrderService.create(
        db, user.id, "JNE", "Bandung", "10000",
        [{"product_id": product.id, "quantity": 2, "unit_price": "50000"}],
    )


class TestUpdateFields:

    async def test_empty_patch(self, db, order):
        with pytest.raises(NoFieldsProvidedError):
            await OrderService.update_fields(db, order.id, OrderPatch())

    async def test_invalid_status(self, db, order):
        order_id = order.id

        with pytest.raises(InvalidStatusError):
            await OrderService.update_fields(db, order_id, OrderPatch(status="lunas"))

        reloaded = await OrderService.get(db, order_id)
        assert reloaded.status == OrderStatus.BELUM_BAYAR.value

    async def test_walks_the_happy_path(self, db, order):
        order_id = order.id

        shipped = await OrderService.update_fields(db, order_id, OrderPatch(status="dikirim"))
        assert shipped.status == "dikirim"

        done = await OrderService.update_fields(db, order_id, OrderPatch(status="selesai"))

        assert done.status == "selesai"

    async def test_skipping_a_step_conflicts(self, db, order):
        with pytest.raises(ConflictError) as exc_info:
            await OrderService.update_fields(db, order.id, OrderPatch(status="selesai"))

        assert not isinstance(exc_info.value, AlreadyProcessedError)

    async def test_terminal_status_is_final(self, db, order):
        order_id = order.id
        await OrderService.update_fields(db, order_id, OrderPatch(status="dibatalkan"))

        with pytest.raises(AlreadyProcessedError):
            await OrderService.update_fields(db, order_id, OrderPatch(status="dikirim"))

    async def test_restating_status_is_allowed(self, db, order):
        updated = await OrderService.update_fields(
            db, order.id, OrderPatch(status="belum_bayar", shipping_method="SiCepat")
        )

        assert updated.status == "belum_bayar"
        assert updated.shipping_method == "SiCepat"

    async def test_shipping_cost_recomputes_total(self, db, order):
        updated = await OrderService.update_fields(db, order.id, OrderPatch(shipping_cost="25000"))

        assert updated.shipping_cost == Decimal("25000.00")
        assert updated.total_price == Decimal("125000.00")

    async def test_cancel_does_not_restore_stock(self, db, order):
        order_id = order.id
        product_id = order.items[0].product_id
        await OrderService.attach_payment_proof(db, order_id, "images/proof.png")

        await OrderService.update_fields(db, order_id, OrderPatch(status="dibatalkan"))

        assert await inventory_ledger.get_stock(db, product_id) == 3

    async def test_scoped_to_owner(self, db, order, make_user):
        stranger = await make_user(name="Dedi")

        with pytest.raises(NotFoundError):
            await OrderService.update_fields(
                db, order.id, OrderPatch(shipping_address="x"), stranger.id
            )


class TestListOrders:

    async def test_user_sees_only_own_orders(self, db, make_user, make_product, make_order):
        ani = await make_user(name="Ani")
        dedi = await make_user(name="Dedi")
        product = await make_product()
        await make_order(ani.id, [(product.id, "Kemeja", 1, "1000")])
        await make_order(dedi.id, [(product.id, "Kemeja", 1, "1000")])

        data = await OrderService.list_orders(db, viewer_id=ani.id, viewer_is_admin=False)

        assert data["user_role"] == "user"
        assert [o["user_id"] for o in data["orders"]] == [ani.id]
        assert data["pagination"]["total_items"] == 1

    async def test_admin_pagination(self, db, make_user, make_product, make_order):
        admin = await make_user(name="Admin", role="admin")
        buyer = await make_user()
        product = await make_product()
        for _ in range(3):
            await make_order(buyer.id, [(product.id, "Kemeja", 1, "1000")])

        data = await OrderService.list_orders(
            db, viewer_id=admin.id, viewer_is_admin=True, page=2, limit=2
        )

        assert len(data["orders"]) == 1
        assert data["pagination"] == {
            "current_page": 2,
            "total_pages": 2,
            "total_items": 3,
            "limit": 2,
            "has_next": False,
            "has_prev": True,
        }
        assert data["orders"][0]["user_name"] == "Budi"

    async def test_filter_with_summary(self, db, make_user, make_product, make_order):
        admin = await make_user(name="Admin", role="admin")
        buyer = await make_user()
        product = await make_product()
        await make_order(buyer.id, [(product.id, "Kemeja", 1, "1000")])
        await make_order(buyer.id, [(product.id, "Kemeja", 1, "1000")], status="dikirim")
        await make_order(buyer.id, [(product.id, "Kemeja", 1, "1000")], status="dikirim")

        data = await OrderService.list_orders(
            db, viewer_id=admin.id, viewer_is_admin=True, status="dikirim", include_summary=True
        )
        everything = await OrderService.list_orders(
            db, viewer_id=admin.id, viewer_is_admin=True, status="semua", include_summary=True
        )

        assert len(data["orders"]) == 2
        assert data["filter"]["applied_filter"] == "dikirim"
        summary = {row["status"]: row["count"] for row in data["status_summary"]}
        assert summary == {"belum_bayar": 1, "dikirim": 2}
        assert everything["filter"]["applied_filter"] is None
        assert len(everything["orders"]) == 3

    async def test_unknown_status_filter(self, db, make_user):
        user = await make_user()

        with pytest.raises(InvalidStatusError):
            await OrderService.list_orders(db, viewer_id=user.id, viewer_is_admin=False, status="x")
