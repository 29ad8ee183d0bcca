"""Application tests for the checkout orchestrator."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from ordering.checkout.orchestrator import CheckoutOrchestrator
from ordering.domain import ordering
from ordering.exceptions import (
    AlreadyCheckedOutError,
    AuthorizationServiceError,
    CartNotFoundError,
    EmptyCartError,
    MalformedCardTokenError,
    PaymentDeclinedError,
)
from payments.authorization.port import AuthorizationResult

VALID_CARD = "1234-5678-9012-3456"


def _cart_with_items(checkout, customer_id=100, items=((5, 2),)):
    cart_id = checkout.create_cart(customer_id)
    for product_id, quantity in items:
        checkout.add_item(cart_id, product_id, quantity)
    return cart_id


def _published(broker, broker_settings):
    queue = broker.queue(broker_settings.queue)
    bodies = []
    while True:
        delivery = queue.get()
        if delivery is None:
            return bodies
        queue.ack(delivery.delivery_tag)
        bodies.append(json.loads(delivery.body))


class TestSuccessfulCheckout:
    def test_returns_order_id_starting_at_1000(self, checkout):
        cart_id = _cart_with_items(checkout)
        assert checkout.checkout(cart_id, VALID_CARD) == 1000

    def test_order_ids_increase_across_carts(self, checkout):
        first = checkout.checkout(_cart_with_items(checkout), VALID_CARD)
        second = checkout.checkout(_cart_with_items(checkout), VALID_CARD)
        assert second == first + 1

    def test_cart_is_checked_out(self, checkout, store):
        cart_id = _cart_with_items(checkout)
        checkout.checkout(cart_id, VALID_CARD)
        assert store.get(cart_id).is_checked_out

    def test_order_is_published(self, checkout, broker, broker_settings):
        cart_id = _cart_with_items(checkout, customer_id=42, items=((5, 2), (9, 1)))
        order_id = checkout.checkout(cart_id, VALID_CARD)

        [message] = _published(broker, broker_settings)
        assert message["order_id"] == order_id
        assert message["shopping_cart_id"] == cart_id
        assert message["customer_id"] == 42
        assert sorted((item["product_id"], item["quantity"]) for item in message["items"]) == [(5, 2), (9, 1)]
        assert message["timestamp"]

    def test_authorizer_called_once_with_card(self, checkout, authorizer):
        checkout.checkout(_cart_with_items(checkout), VALID_CARD)
        assert authorizer.calls == [VALID_CARD]


class TestRejectedCheckout:
    def test_unknown_cart(self, checkout, authorizer):
        with pytest.raises(CartNotFoundError):
            checkout.checkout(999, VALID_CARD)
        assert authorizer.calls == []

    def test_empty_cart(self, checkout, authorizer):
        cart_id = checkout.create_cart(100)
        with pytest.raises(EmptyCartError):
            checkout.checkout(cart_id, VALID_CARD)
        assert authorizer.calls == []

    @pytest.mark.parametrize("card", ["1234567890123456", "1234-5678-9012-345", "abcd-efgh-ijkl-mnop", "", None])
    def test_malformed_card_leaves_cart_open(self, checkout, store, authorizer, card):
        cart_id = _cart_with_items(checkout)
        with pytest.raises(MalformedCardTokenError) as exc:
            checkout.checkout(cart_id, card)

        assert exc.value.code == "INVALID_CARD_FORMAT"
        assert not store.get(cart_id).is_checked_out
        assert authorizer.calls == []

    def test_second_checkout_of_same_cart(self, checkout, authorizer):
        cart_id = _cart_with_items(checkout)
        checkout.checkout(cart_id, VALID_CARD)

        with pytest.raises(AlreadyCheckedOutError):
            checkout.checkout(cart_id, VALID_CARD)
        assert len(authorizer.calls) == 1

    def test_declined_card_consumes_cart(self, checkout, store, authorizer, broker, broker_settings):
        authorizer.configure(outcome=AuthorizationResult.DECLINED)
        cart_id = _cart_with_items(checkout)

        with pytest.raises(PaymentDeclinedError) as exc:
            checkout.checkout(cart_id, VALID_CARD)

        assert exc.value.code == "PAYMENT_DECLINED"
        assert store.get(cart_id).is_checked_out
        assert _published(broker, broker_settings) == []

        authorizer.configure(outcome=AuthorizationResult.AUTHORIZED)
        with pytest.raises(AlreadyCheckedOutError):
            checkout.checkout(cart_id, VALID_CARD)

    def test_authorizer_unavailable(self, checkout, store, authorizer, broker, broker_settings):
        authorizer.configure(unavailable=True)
        cart_id = _cart_with_items(checkout)

        with pytest.raises(AuthorizationServiceError):
            checkout.checkout(cart_id, VALID_CARD)

        assert store.get(cart_id).is_checked_out
        assert _published(broker, broker_settings) == []

    def test_failed_checkout_does_not_use_an_order_id(self, checkout, authorizer):
        authorizer.configure(outcome=AuthorizationResult.DECLINED)
        with pytest.raises(PaymentDeclinedError):
            checkout.checkout(_cart_with_items(checkout), VALID_CARD)

        authorizer.configure(outcome=AuthorizationResult.AUTHORIZED)
        assert checkout.checkout(_cart_with_items(checkout), VALID_CARD) == 1000


class TestPublishFailures:
    def test_unavailable_broker_still_returns_order_id(self, checkout, broker, broker_settings):
        broker.configure(available=False)
        order_id = checkout.checkout(_cart_with_items(checkout), VALID_CARD)

        assert order_id == 1000
        broker.configure(available=True)
        assert _published(broker, broker_settings) == []

    def test_producer_exception_still_returns_order_id(self, checkout, producer):
        with patch.object(producer, "publish", side_effect=RuntimeError("boom")) as publish:
            assert checkout.checkout(_cart_with_items(checkout), VALID_CARD) == 1000
        publish.assert_called_once()

    def test_without_producer(self, store, authorizer):
        orchestrator = CheckoutOrchestrator(store=store, authorizer=authorizer, producer=None)
        cart_id = orchestrator.create_cart(100)
        orchestrator.add_item(cart_id, 5, 1)
        assert orchestrator.checkout(cart_id, VALID_CARD) == 1000


class TestConcurrentCheckout:
    def test_exactly_one_checkout_succeeds(self, checkout, authorizer, broker, broker_settings):
        cart_id = _cart_with_items(checkout)
        attempts = 12
        barrier = threading.Barrier(attempts)

        def attempt():
            barrier.wait()
            with ordering.domain_context():
                try:
                    return checkout.checkout(cart_id, VALID_CARD)
                except AlreadyCheckedOutError:
                    return None

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            results = list(pool.map(lambda _: attempt(), range(attempts)))

        assert [result for result in results if result is not None] == [1000]
        assert len(authorizer.calls) == 1
        assert len(_published(broker, broker_settings)) == 1

    def test_order_ids_unique_across_carts(self, checkout):
        cart_ids = [_cart_with_items(checkout, customer_id=n) for n in range(40)]

        def run(cart_id):
            with ordering.domain_context():
                return checkout.checkout(cart_id, VALID_CARD)

        with ThreadPoolExecutor(max_workers=8) as pool:
            order_ids = list(pool.map(run, cart_ids))

        assert sorted(order_ids) == list(range(1000, 1040))
    def test_concurrent_checkouts_of_empty_cart_all_fail_empty(self, checkout, store, authorizer):
        cart_id = checkout.create_cart(100)
        attempts = 12
        barrier = threading.Barrier(attempts)

        def attempt():
            barrier.wait()
            with ordering.domain_context():
                try:
                    checkout.checkout(cart_id, VALID_CARD)
                except (EmptyCartError, AlreadyCheckedOutError) as exc:
                    return type(exc)
                return None

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            results = list(pool.map(lambda _: attempt(), range(attempts)))

        assert results == [EmptyCartError] * attempts
        assert not store.get(cart_id).is_checked_out
        assert authorizer.calls == []
