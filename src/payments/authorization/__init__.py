"""Card authorizer factory.

Provides get_authorizer() / set_authorizer() to swap implementations:
- FakeAuthorizer for development and testing
- HttpAuthorizer for the real authorization service (AUTHORIZER_ADAPTER=http)
"""

from payments.authorization.port import CardAuthorizer
from shared.settings import AuthorizerSettings

_current_authorizer: CardAuthorizer | None = None


def get_authorizer() -> CardAuthorizer:
    """Return the current authorizer. Defaults to the adapter named by AUTHORIZER_ADAPTER."""
    global _current_authorizer
    if _current_authorizer is None:
        settings = AuthorizerSettings.from_env()
        if settings.adapter == "fake":
            from payments.authorization.fake_adapter import FakeAuthorizer

            _current_authorizer = FakeAuthorizer(approval_rate=settings.approval_rate)
        elif settings.adapter == "http":
            from payments.authorization.http_adapter import HttpAuthorizer

            _current_authorizer = HttpAuthorizer(url=settings.url, timeout=settings.timeout)
        else:
            raise ValueError(f"Unknown authorizer adapter: {settings.adapter}")
    return _current_authorizer


def set_authorizer(authorizer: CardAuthorizer) -> None:
    """Override the active authorizer (useful for tests)."""
    global _current_authorizer
    _current_authorizer = authorizer


def reset_authorizer() -> None:
    """Reset to default authorizer."""
    global _current_authorizer
    _current_authorizer = None
