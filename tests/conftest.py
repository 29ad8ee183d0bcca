import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Tests always run against the in-process broker and the fake authorizer,
    whatever the shell environment says.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ["BROKER_ADAPTER"] = "memory"
    os.environ["AUTHORIZER_ADAPTER"] = "fake"


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Drop process-wide adapters after every test"""
    yield

    from ordering.checkout import reset_checkout
    from payments.authorization import reset_authorizer
    from shared.broker import reset_broker

    reset_checkout()
    reset_authorizer()
    reset_broker()


@pytest.fixture(scope="session")
def ordering_bed():
    from protean.integrations.pytest import DomainFixture

    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()
