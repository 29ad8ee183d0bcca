import pytest
from ordering.cart.store import CartStore
from ordering.checkout import set_checkout
from ordering.checkout.orchestrator import CheckoutOrchestrator
from ordering.order.producer import OrderProducer
from payments.authorization.fake_adapter import FakeAuthorizer
from payments.authorization.port import AuthorizationResult
from shared.broker.memory_adapter import InMemoryBroker
from shared.settings import BrokerSettings


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture
def store():
    return CartStore()


@pytest.fixture
def authorizer():
    fake = FakeAuthorizer(seed=7)
    fake.configure(outcome=AuthorizationResult.AUTHORIZED)
    return fake


@pytest.fixture
def broker_settings():
    return BrokerSettings()


@pytest.fixture
def broker(broker_settings):
    memory = InMemoryBroker()
    memory.declare(broker_settings.exchange, broker_settings.queue, broker_settings.routing_key)
    yield memory
    memory.close()


@pytest.fixture
def producer(broker, broker_settings):
    return OrderProducer(broker, broker_settings)


@pytest.fixture
def checkout(store, authorizer, producer):
    orchestrator = CheckoutOrchestrator(store=store, authorizer=authorizer, producer=producer)
    set_checkout(orchestrator)
    return orchestrator
