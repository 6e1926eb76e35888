"""Order composer: cart editing and the all-or-nothing commit."""

from datetime import datetime

import pytest

from petalpos.errors import InsufficientStock, InvalidAmount, InvalidQuantity, InvalidState, NotFound
from petalpos.models import Order, StockMovement, Transaction
from petalpos.services import inventory_service, order_service
from petalpos.services.order_service import (
    BUILDING,
    COMMITTED,
    DELIVERED,
    DISCARDED,
    EMPTY,
    PENDING,
    PREPARING,
)
from petalpos.signals import order_committed, order_delivered
from petalpos.validation import ValidationError


def _roses_and_greens(make_product):
    roses = make_product("Red roses", stock=20, price_cents=250)
    greens = make_product("Eucalyptus", stock=10, price_cents=100)
    return roses, greens


# =============================================================================
# CART EDITING
# =============================================================================

class TestCartEditing:

    def test_new_cart_is_empty(self, db_session):
        order = order_service.create_order(actor="ana")
        assert order.status == EMPTY
        assert order.total_cents == 0
        assert order.lines == []

    def test_standard_item_merges_same_product(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()

        order_service.add_standard_item(order.id, roses.id, 2)
        order_service.add_standard_item(order.id, roses.id, 3)

        order = order_service.get_order(order.id)
        assert order.status == BUILDING
        assert len(order.lines) == 1
        assert order.lines[0].quantity == 5
        assert order.total_cents == 5 * 250

    def test_standard_item_snapshots_price(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        line = order_service.add_standard_item(order.id, roses.id, 1)

        roses.price_cents = 999
        db_session.commit()

        assert line.unit_price_cents == 250

    def test_standard_item_does_not_touch_stock(self, db_session, make_product, stock_of):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_standard_item(order.id, roses.id, 50)
        assert stock_of(roses.id) == 20

    def test_inactive_product_rejected(self, db_session, make_product):
        p = make_product(stock=5, is_active=False)
        order = order_service.create_order()
        with pytest.raises(InvalidState):
            order_service.add_standard_item(order.id, p.id, 1)

    @pytest.mark.parametrize("quantity", [0, -2, 1.5])
    def test_bad_quantity(self, db_session, make_product, quantity):
        p = make_product(stock=5)
        order = order_service.create_order()
        with pytest.raises(InvalidQuantity):
            order_service.add_standard_item(order.id, p.id, quantity)

    def test_unknown_order(self, db_session, make_product):
        p = make_product(stock=5)
        with pytest.raises(NotFound):
            order_service.add_standard_item(12345, p.id, 1)

    def test_custom_item_priced_as_a_unit(self, db_session, make_product):
        roses, greens = _roses_and_greens(make_product)
        order = order_service.create_order()

        line = order_service.add_custom_item(
            order.id,
            name="Bridal bouquet",
            unit_price_cents=4500,
            quantity=2,
            composition=[
                {"product_id": roses.id, "color_allocations": {"red": 6, "white": 0}},
                {"product_id": greens.id, "color_allocations": {"default": 3}},
            ],
        )

        assert [(a.product_id, a.color_id, a.quantity) for a in line.allocations] == [
            (roses.id, "red", 6),
            (greens.id, "default", 3),
        ]
        order = order_service.get_order(order.id)
        assert order.total_cents == 9000
        assert order_service.required_stems(order.lines) == {roses.id: 12, greens.id: 6}

    def test_custom_item_soft_check(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        with pytest.raises(InsufficientStock) as exc:
            order_service.add_custom_item(
                order.id,
                name="Big bouquet",
                unit_price_cents=2000,
                quantity=3,
                composition=[{"product_id": roses.id, "color_allocations": {"red": 7}}],
            )
        assert exc.value.details["items"] == [{"product_id": roses.id, "requested": 21, "available": 20}]
        assert order_service.get_order(order.id).status == EMPTY

    def test_custom_item_needs_name_and_price(self, db_session):
        order = order_service.create_order()
        with pytest.raises(InvalidAmount):
            order_service.add_custom_item(order.id, name="Posy", unit_price_cents=-1)

    def test_repeated_color_is_summed_in_view_and_commit(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        line = order_service.add_custom_item(
            order.id,
            name="Two-tone posy",
            unit_price_cents=1800,
            composition=[
                {"product_id": roses.id, "color_allocations": {"red": 2}},
                {"product_id": roses.id, "color_allocations": {"red": 3, "white": 1}},
            ],
        )

        assert line.to_dict()["composition"] == [
            {"product_id": roses.id, "color_allocations": {"red": 5, "white": 1}},
        ]
        assert order_service.required_stems([line]) == {roses.id: 6}

    @pytest.mark.parametrize("composition", [
        None,
        [],
        [{"product_id": 1, "color_allocations": {"red": 0}}],
    ])
    def test_custom_item_needs_at_least_one_stem(self, db_session, composition):
        order = order_service.create_order()
        with pytest.raises(InvalidQuantity):
            order_service.add_custom_item(order.id, name="Empty vase", unit_price_cents=500,
                                          composition=composition)
        assert order_service.get_order(order.id).lines == []

    def test_update_quantity_never_below_one(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        line = order_service.add_standard_item(order.id, roses.id, 2)

        line = order_service.update_quantity(order.id, line.id, -10)
        assert line.quantity == 1
        assert order_service.get_order(order.id).total_cents == 250

    def test_removing_last_line_empties_cart(self, db_session, make_product):
        roses, greens = _roses_and_greens(make_product)
        order = order_service.create_order()
        first = order_service.add_standard_item(order.id, roses.id, 1)
        second = order_service.add_standard_item(order.id, greens.id, 1)

        order = order_service.remove_item(order.id, first.id)
        assert order.status == BUILDING
        assert [line.id for line in order.lines] == [second.id]

        order = order_service.remove_item(order.id, second.id)
        assert order.status == EMPTY
        assert order.total_cents == 0

    def test_clear_discards_cart(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_standard_item(order.id, roses.id, 1)

        order = order_service.clear_order(order.id)
        assert order.status == DISCARDED
        assert order.lines == []
        with pytest.raises(InvalidState):
            order_service.add_standard_item(order.id, roses.id, 1)


# =============================================================================
# COMMIT
# =============================================================================

class TestCommit:

    def test_commit_deducts_and_posts_one_income(self, db_session, make_product, stock_of):
        roses, greens = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_standard_item(order.id, roses.id, 3)
        order_service.add_custom_item(
            order.id,
            name="Posy",
            unit_price_cents=1500,
            composition=[
                {"product_id": roses.id, "color_allocations": {"red": 2}},
                {"product_id": greens.id, "color_allocations": {"default": 4}},
            ],
        )

        order = order_service.commit_order(order.id, actor="ana")

        assert order.status == COMMITTED
        assert order.committed_at is not None
        assert stock_of(roses.id) == 15
        assert stock_of(greens.id) == 6

        tx = db_session.query(Transaction).one()
        assert tx.type == "income"
        assert tx.amount_cents == 3 * 250 + 1500
        assert tx.related_order_id == order.id
        assert order.transaction_id == tx.id

        movements = db_session.query(StockMovement).filter_by(order_id=order.id).all()
        assert sorted(m.quantity_delta for m in movements) == [-5, -4]

    def test_all_or_nothing(self, db_session, make_product, stock_of):
        p1 = make_product("Roses", stock=5)
        p2 = make_product("Lilies", stock=4)
        p3 = make_product("Orchids", stock=2)

        order = order_service.create_order()
        order_service.add_standard_item(order.id, p1.id, 3)
        order_service.add_custom_item(
            order.id,
            name="Orchid posy",
            unit_price_cents=3000,
            composition=[
                {"product_id": p2.id, "color_allocations": {"white": 4}},
                {"product_id": p3.id, "color_allocations": {"purple": 2}},
            ],
        )
        # One orchid spoils between building the cart and checkout
        inventory_service.record_shrinkage(product_id=p3.id, quantity=1)
        transactions_before = db_session.query(Transaction).count()

        with pytest.raises(InsufficientStock) as exc:
            order_service.commit_order(order.id)

        assert exc.value.details["items"] == [{"product_id": p3.id, "requested": 2, "available": 1}]
        assert (stock_of(p1.id), stock_of(p2.id), stock_of(p3.id)) == (5, 4, 1)
        assert db_session.query(StockMovement).filter_by(order_id=order.id).count() == 0
        assert db_session.query(Transaction).count() == transactions_before

        order = order_service.get_order(order.id)
        assert order.status == BUILDING
        assert len(order.lines) == 2

    def test_cannot_commit_empty_cart(self, db_session):
        order = order_service.create_order()
        with pytest.raises(InvalidState):
            order_service.commit_order(order.id)

    def test_cannot_commit_twice(self, db_session, make_product, stock_of):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_standard_item(order.id, roses.id, 2)
        order_service.commit_order(order.id)

        with pytest.raises(InvalidState):
            order_service.commit_order(order.id)
        assert stock_of(roses.id) == 18

    def test_committed_cart_is_frozen(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        line = order_service.add_standard_item(order.id, roses.id, 2)
        order_service.commit_order(order.id)

        with pytest.raises(InvalidState):
            order_service.update_quantity(order.id, line.id, 1)
        with pytest.raises(InvalidState):
            order_service.remove_item(order.id, line.id)
        with pytest.raises(InvalidState):
            order_service.clear_order(order.id)

    def test_zero_total_commit_posts_nothing(self, db_session, make_product, stock_of):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_custom_item(
            order.id,
            name="Sample stem",
            unit_price_cents=0,
            composition=[{"product_id": roses.id, "color_allocations": {"red": 1}}],
        )

        order = order_service.commit_order(order.id)
        assert order.status == COMMITTED
        assert order.transaction_id is None
        assert stock_of(roses.id) == 19
        assert db_session.query(Transaction).count() == 0

    def test_commit_notifies(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_standard_item(order.id, roses.id, 1)
        received = []

        def receiver(sender, **payload):
            received.append(payload["order"].id)

        with order_committed.connected_to(receiver):
            order_service.commit_order(order.id)

        assert received == [order.id]
        assert db_session.get(Order, order.id).status == COMMITTED


# =============================================================================
# FULFILMENT QUEUE
# =============================================================================

def _committed(make_product, **details):
    product = make_product("Peonies", stock=50, price_cents=400)
    order = order_service.create_order(**details)
    order_service.add_standard_item(order.id, product.id, 1)
    return order_service.commit_order(order.id)


class TestFulfillment:

    def test_commit_enters_queue_as_pending(self, db_session, make_product):
        order = _committed(make_product, client_name="Lucia", scheduled_for="2026-03-08T15:00:00Z")
        assert order.fulfillment_status == PENDING
        assert order.scheduled_for == datetime(2026, 3, 8, 15, 0, 0)
        assert order_service.list_fulfillment_queue() == [order]

    def test_open_carts_are_not_queued(self, db_session):
        order_service.create_order(client_name="Lucia")
        assert order_service.list_fulfillment_queue() == []

    def test_pending_preparing_delivered(self, db_session, make_product):
        order = _committed(make_product)
        delivered_at = datetime(2026, 3, 8, 16, 30, 0)

        order = order_service.advance_fulfillment(order.id, PREPARING)
        assert order.fulfillment_status == PREPARING
        order = order_service.advance_fulfillment(order.id, DELIVERED, now=delivered_at)

        assert order.fulfillment_status == DELIVERED
        assert order.delivered_at == delivered_at
        assert order_service.list_fulfillment_queue() == []
        assert order_service.list_fulfillment_queue(delivered=True) == [order]

    def test_pending_can_go_straight_to_delivered(self, db_session, make_product):
        order = _committed(make_product)
        order = order_service.advance_fulfillment(order.id, DELIVERED)
        assert order.fulfillment_status == DELIVERED

    def test_no_going_back(self, db_session, make_product):
        order = _committed(make_product)
        order_service.advance_fulfillment(order.id, DELIVERED)
        with pytest.raises(InvalidState):
            order_service.advance_fulfillment(order.id, PREPARING)
        with pytest.raises(InvalidState):
            order_service.advance_fulfillment(order.id, PENDING)

    def test_delivery_posts_no_transaction(self, db_session, make_product):
        order = _committed(make_product)
        before = db_session.query(Transaction).count()
        order_service.advance_fulfillment(order.id, DELIVERED)
        assert db_session.query(Transaction).count() == before

    def test_uncommitted_cart_cannot_be_fulfilled(self, db_session, make_product):
        roses, _ = _roses_and_greens(make_product)
        order = order_service.create_order()
        order_service.add_standard_item(order.id, roses.id, 1)
        with pytest.raises(InvalidState):
            order_service.advance_fulfillment(order.id, PREPARING)

    def test_unknown_status(self, db_session, make_product):
        order = _committed(make_product)
        with pytest.raises(ValidationError):
            order_service.advance_fulfillment(order.id, "lost")

    def test_queue_orders_by_schedule_then_commit_time(self, db_session, make_product):
        walk_in = _committed(make_product)
        later = _committed(make_product, scheduled_for=datetime(2026, 3, 9, 10))
        sooner = _committed(make_product, scheduled_for=datetime(2026, 3, 8, 10))

        assert [o.id for o in order_service.list_fulfillment_queue()] == [sooner.id, later.id, walk_in.id]

    def test_details_editable_until_delivered(self, db_session, make_product):
        order = _committed(make_product)
        order = order_service.update_details(order.id, {"client_phone": "+51 999 111 222",
                                                        "dedication": "Happy birthday"})
        assert order.client_phone == "+51 999 111 222"

        order_service.advance_fulfillment(order.id, DELIVERED)
        with pytest.raises(InvalidState):
            order_service.update_details(order.id, {"dedication": "Too late"})

    def test_details_reject_unknown_fields(self, db_session):
        order = order_service.create_order()
        with pytest.raises(ValidationError):
            order_service.update_details(order.id, {"total_cents": 1})

    def test_delivery_notifies(self, db_session, make_product):
        order = _committed(make_product)
        received = []

        def receiver(sender, **payload):
            received.append(payload["order"].fulfillment_status)

        with order_delivered.connected_to(receiver):
            order_service.advance_fulfillment(order.id, PREPARING)
            order_service.advance_fulfillment(order.id, DELIVERED)

        assert received == [DELIVERED]
