"""Model and order state machine tests"""
import pytest
from sqlalchemy.exc import IntegrityError

from app.models.game_completion import GameCompletion
from app.models.order import ORDER_TRANSITIONS, OrderLineItem, OrderStatus, can_transition

SINKS = (OrderStatus.ON_HOLD, OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.FAILED)


@pytest.mark.critical
class TestOrderStateMachine:

    def test_new_orders_start_as_draft(self):
        assert can_transition(None, OrderStatus.DRAFT)
        assert not can_transition(None, OrderStatus.CONFIRMED)

    @pytest.mark.parametrize("target", [
        OrderStatus.PROCESSING, OrderStatus.ON_HOLD, OrderStatus.PARTIAL, OrderStatus.SHIPPED,
        OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.FAILED,
    ])
    def test_confirmed_moves_forward(self, target):
        assert can_transition(OrderStatus.CONFIRMED, target)

    def test_draft_only_confirms_or_terminates(self):
        assert can_transition(OrderStatus.DRAFT, OrderStatus.CONFIRMED)
        assert can_transition(OrderStatus.DRAFT, OrderStatus.CANCELLED)
        assert not can_transition(OrderStatus.DRAFT, OrderStatus.SHIPPED)
        assert not can_transition(OrderStatus.DRAFT, OrderStatus.FULFILLED)

    def test_shipped_only_fulfills(self):
        assert can_transition(OrderStatus.SHIPPED, OrderStatus.FULFILLED)
        assert not can_transition(OrderStatus.SHIPPED, OrderStatus.PROCESSING)
        assert not can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)

    @pytest.mark.parametrize("sink", SINKS)
    def test_sinks_have_no_exits(self, sink):
        assert sink not in ORDER_TRANSITIONS
        for target in OrderStatus:
            assert can_transition(sink, target) == (target == sink)

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_reapplying_same_state_is_allowed(self, status):
        assert can_transition(status, status)

    def test_accepts_plain_strings(self):
        assert can_transition("processing", "partial")
        assert not can_transition("fulfilled", "processing")


class TestConstraints:

    def test_line_item_discount_above_cap_rejected(self, db_session, confirmed_order):
        db_session.add(OrderLineItem(
            order_id=confirmed_order.id,
            product_id="cr-punk-tee",
            product_name="Punk Caterpillar Tee",
            variant_id="cr-punk-tee-l-black",
            variant_size="L",
            variant_color="Black",
            unit_price=20.0,
            quantity=1,
            discount_percent=40,
            subtotal=12.0,
            external_variant_id=4013,
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_negative_score_rejected(self, db_session):
        db_session.add(GameCompletion(
            session_token="s", game_type="snake", product_id="p", score=-1, discount_earned=0
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_deleting_order_cascades_items(self, db_session, confirmed_order):
        db_session.delete(confirmed_order)
        db_session.commit()

        assert db_session.query(OrderLineItem).count() == 0
