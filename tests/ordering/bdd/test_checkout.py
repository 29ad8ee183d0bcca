"""BDD tests for cart checkout."""

import json

from ordering.exceptions import AuthorizationServiceError
from payments.authorization.port import AuthorizationResult
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/checkout.feature")


def _drain(broker, broker_settings):
    queue = broker.queue(broker_settings.queue)
    messages = []
    while (delivery := queue.get()) is not None:
        queue.ack(delivery.delivery_tag)
        messages.append(json.loads(delivery.body))
    return messages


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a cart for customer {customer_id:d}"), target_fixture="cart_id")
def cart_for_customer(checkout, customer_id):
    return checkout.create_cart(customer_id)


@given(parsers.cfparse("the cart holds {quantity:d} of product {product_id:d}"))
def cart_holds(checkout, cart_id, quantity, product_id):
    checkout.add_item(cart_id, product_id, quantity)


@given("the card authorizer approves")
def authorizer_approves(authorizer):
    authorizer.configure(outcome=AuthorizationResult.AUTHORIZED)


@given("the card authorizer declines")
def authorizer_declines(authorizer):
    authorizer.configure(outcome=AuthorizationResult.DECLINED)


@given("the card authorizer is unavailable")
def authorizer_unavailable(authorizer):
    authorizer.configure(unavailable=True)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the cart is checked out with card "{card}"'))
def check_out(checkout, cart_id, card, outcome):
    try:
        outcome["order_id"] = checkout.checkout(cart_id, card)
    except (ValidationError, AuthorizationServiceError) as exc:
        outcome["exc"] = exc


@when(parsers.cfparse("{quantity:d} of product {product_id:d} is added to the cart"))
def add_to_cart(checkout, cart_id, quantity, product_id, outcome):
    try:
        checkout.add_item(cart_id, product_id, quantity)
    except ValidationError as exc:
        outcome["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("an order is created with id {order_id:d}"))
def order_created(outcome, order_id):
    assert outcome["exc"] is None
    assert outcome["order_id"] == order_id


@then(parsers.cfparse('the checkout fails with "{code}"'))
def checkout_fails(outcome, code):
    assert outcome["exc"] is not None, "Expected the checkout to fail"
    assert outcome["exc"].code == code


@then("the cart is checked out")
def cart_checked_out(store, cart_id):
    assert store.get(cart_id).is_checked_out


@then("the cart is open")
def cart_open(store, cart_id):
    assert not store.get(cart_id).is_checked_out


@then(parsers.cfparse("the warehouse queue holds {count:d} message"))
def queue_holds_singular(broker, broker_settings, count):
    assert broker.queue(broker_settings.queue).message_count == count


@then(parsers.cfparse("the warehouse queue holds {count:d} messages"))
def queue_holds(broker, broker_settings, count):
    assert broker.queue(broker_settings.queue).message_count == count


@then(parsers.cfparse("the published order has {quantity:d} of product {product_id:d}"))
def published_order_has(broker, broker_settings, quantity, product_id):
    [message] = _drain(broker, broker_settings)
    assert {"product_id": product_id, "quantity": quantity} in message["items"]
