"""
Tests for OrderService creation and the payment-proof reconciliation.

The reconciliation guarantees exercised here:
- no stock moves until the first proof is attached
- the first proof takes stock for every line, or for none
- later proofs only swap the reference
- orders that are already closed accept no first proof
"""
from decimal import Decimal

import pytest

from butik.core.exceptions import (
    AlreadyProcessedError,
    InsufficientStockError,
    InvalidInputError,
    NotFoundError,
)
from butik.services import inventory_ledger
from butik.services.order_service import OrderPatch, OrderService, parse_lines
from butik.services.product_service import ProductPatch, ProductService


def line(product_id, quantity=1, unit_price="100000"):
    return {"product_id": product_id, "quantity": quantity, "unit_price": unit_price}


class TestParseLines:

    def test_accepts_numeric_strings(self):
        lines = parse_lines([{"product_id": "3", "quantity": "2", "unit_price": "15000.50"}])

        assert lines[0].product_id == 3
        assert lines[0].quantity == 2
        assert lines[0].unit_price == Decimal("15000.50")

    def test_empty_items(self):
        with pytest.raises(InvalidInputError):
            parse_lines([])

    @pytest.mark.parametrize("raw", [
        {"product_id": 1, "quantity": 1},
        {"product_id": 1, "unit_price": "10"},
        {"quantity": 1, "unit_price": "10"},
    ])
    def test_missing_field(self, raw):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_lines([raw])

        assert exc_info.value.message == "Each item must have product_id, quantity, and unit_price"

    @pytest.mark.parametrize("raw", [
        {"product_id": 1, "quantity": 0, "unit_price": "10"},
        {"product_id": 1, "quantity": "dua", "unit_price": "10"},
        {"product_id": 1, "quantity": 1, "unit_price": "0"},
        {"product_id": 1, "quantity": 1, "unit_price": "-5"},
    ])
    def test_non_positive_or_non_numeric(self, raw):
        with pytest.raises(InvalidInputError):
            parse_lines([raw])


class TestCreate:

    async def test_total_is_lines_plus_shipping(self, db, make_user, make_product):
        user = await make_user()
        shirt = await make_product(name="Kemeja", stock=5)
        scarf = await make_product(name="Syal", stock=5)

        order = await OrderService.create(
            db, user.id, "JNE", "Jl. Asia Afrika 8", "15000",
            [line(shirt.id, 2, "100000"), line(scarf.id, 1, "50000")],
        )

        assert order.status == "belum_bayar"
        assert order.transfer_proof is None
        assert order.total_price == Decimal("265000.00")
        assert [item.product_name for item in order.items] == ["Kemeja", "Syal"]

    async def test_creation_does_not_touch_stock(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product(stock=1)

        await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(product.id, 5)])

        assert await inventory_ledger.get_stock(db, product.id) == 1

    async def test_unknown_product(self, db, make_user):
        user = await make_user()

        with pytest.raises(NotFoundError) as exc_info:
            await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(777)])

        assert exc_info.value.message == "Product with ID 777 not found"

    async def test_unknown_user(self, db, make_product):
        product = await make_product()

        with pytest.raises(NotFoundError):
            await OrderService.create(db, 4242, "JNE", "Bandung", 0, [line(product.id)])

    async def test_negative_shipping_cost(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product()

        with pytest.raises(InvalidInputError):
            await OrderService.create(db, user.id, "JNE", "Bandung", "-1", [line(product.id)])


class TestAttachPaymentProof:

    async def test_first_proof_takes_stock_for_every_line(self, db, make_user, make_product):
        user = await make_user()
        shirt = await make_product(stock=5)
        scarf = await make_product(stock=3)
        order = await OrderService.create(
            db, user.id, "JNE", "Bandung", 0, [line(shirt.id, 2), line(scarf.id, 3)]
        )

        attachment = await OrderService.attach_payment_proof(db, order.id, "images/proof-1.png")

        assert attachment.stock_applied is True
        assert attachment.replaced_proof is None
        assert attachment.order.transfer_proof == "images/proof-1.png"
        assert attachment.order.proof_uploaded_at is not None
        assert attachment.order.has_payment_proof is True
        assert await inventory_ledger.get_stock(db, shirt.id) == 3
        assert await inventory_ledger.get_stock(db, scarf.id) == 0

    async def test_second_proof_only_replaces_reference(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product(stock=5)
        order = await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(product.id, 2)])

        await OrderService.attach_payment_proof(db, order.id, "images/first.png")
        attachment = await OrderService.attach_payment_proof(db, order.id, "images/second.png")

        assert attachment.stock_applied is False
        assert attachment.replaced_proof == "images/first.png"
        assert attachment.order.transfer_proof == "images/second.png"
        assert await inventory_ledger.get_stock(db, product.id) == 3

    async def test_one_short_line_rolls_back_all(self, db, make_user, make_product):
        user = await make_user()
        plenty = await make_product(name="Banyak", stock=10)
        scarce = await make_product(name="Sedikit", stock=1)
        order = await OrderService.create(
            db, user.id, "JNE", "Bandung", 0, [line(plenty.id, 4), line(scarce.id, 2)]
        )
        order_id = order.id

        with pytest.raises(InsufficientStockError):
            await OrderService.attach_payment_proof(db, order_id, "images/proof.png")

        assert await inventory_ledger.get_stock(db, plenty.id) == 10
        assert await inventory_ledger.get_stock(db, scarce.id) == 1
        reloaded = await OrderService.get(db, order_id)
        assert reloaded.transfer_proof is None
        assert reloaded.proof_uploaded_at is None

    async def test_failed_attempt_can_be_retried(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product(stock=1)
        order = await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(product.id, 2)])
        order_id = order.id

        with pytest.raises(InsufficientStockError):
            await OrderService.attach_payment_proof(db, order_id, "images/a.png")
        await ProductService.update(db, product.id, ProductPatch(stock=5))
        attachment = await OrderService.attach_payment_proof(db, order_id, "images/b.png")

        assert attachment.stock_applied is True
        assert await inventory_ledger.get_stock(db, product.id) == 3

    async def test_cancelled_order_rejects_first_proof(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product(stock=5)
        product_id = product.id
        order = await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(product_id, 2)])
        order_id = order.id
        await OrderService.update_fields(db, order_id, OrderPatch(status="dibatalkan"))

        with pytest.raises(AlreadyProcessedError):
            await OrderService.attach_payment_proof(db, order_id, "images/late.png")

        assert await inventory_ledger.get_stock(db, product_id) == 5
        reloaded = await OrderService.get(db, order_id)
        assert reloaded.status == "dibatalkan"
        assert reloaded.has_payment_proof is False

    async def test_deleted_product_fails_whole_reconciliation(self, db, make_user, make_product):
        user = await make_user()
        kept = await make_product(name="Tetap", stock=5)
        doomed = await make_product(name="Dihapus", stock=5)
        order = await OrderService.create(
            db, user.id, "JNE", "Bandung", 0, [line(kept.id, 1), line(doomed.id, 1)]
        )
        order_id = order.id
        await ProductService.delete(db, doomed.id)

        with pytest.raises(NotFoundError):
            await OrderService.attach_payment_proof(db, order_id, "images/proof.png")

        assert await inventory_ledger.get_stock(db, kept.id) == 5
        reloaded = await OrderService.get(db, order_id)
        assert reloaded.transfer_proof is None
        assert {item.product_name for item in reloaded.items} == {"Tetap", "Dihapus"}

    async def test_duplicate_lines_of_same_product(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product(stock=3)
        order = await OrderService.create(
            db, user.id, "JNE", "Bandung", 0, [line(product.id, 2), line(product.id, 2)]
        )

        with pytest.raises(InsufficientStockError):
            await OrderService.attach_payment_proof(db, order.id, "images/proof.png")

        assert await inventory_ledger.get_stock(db, product.id) == 3

    async def test_missing_order(self, db):
        with pytest.raises(NotFoundError):
            await OrderService.attach_payment_proof(db, 31337, "images/proof.png")

    async def test_other_users_order_is_not_found(self, db, make_user, make_product):
        owner = await make_user(name="Ani")
        stranger = await make_user(name="Dedi")
        product = await make_product(stock=5)
        order = await OrderService.create(db, owner.id, "JNE", "Bandung", 0, [line(product.id)])

        with pytest.raises(NotFoundError):
            await OrderService.attach_payment_proof(db, order.id, "images/p.png", stranger.id)

        assert await inventory_ledger.get_stock(db, product.id) == 5

    async def test_empty_reference(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product()
        order = await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(product.id)])

        with pytest.raises(InvalidInputError):
            await OrderService.attach_payment_proof(db, order.id, "  ")


class TestDelete:

    async def test_returns_proof_and_keeps_stock_taken(self, db, make_user, make_product):
        user = await make_user()
        product = await make_product(stock=5)
        order = await OrderService.create(db, user.id, "JNE", "Bandung", 0, [line(product.id, 2)])
        order_id = order.id
        await OrderService.attach_payment_proof(db, order_id, "images/proof.png")

        proof = await OrderService.delete(db, order_id)

        assert proof == "images/proof.png"
        assert await inventory_ledger.get_stock(db, product.id) == 3
        with pytest.raises(NotFoundError):
            await OrderService.get(db, order_id)
