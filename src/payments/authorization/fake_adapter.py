"""Configurable fake card authorizer for development and testing.

Simulates the credit card authorization service without network calls. By
default it approves roughly nine cards out of ten, like the real service;
tests pin the outcome with ``configure()``.

The fake checks the card format itself, the same way the real service
answers 400 for a malformed number.
"""

import random
import threading

import structlog

from payments.authorization.port import (
    AuthorizationResult,
    AuthorizationServiceError,
    CardAuthorizer,
    MalformedCardTokenError,
    is_well_formed,
)
from shared.logging import mask_card_number

logger = structlog.get_logger(__name__)


class FakeAuthorizer(CardAuthorizer):
    """Configurable fake card authorizer."""

    def __init__(self, approval_rate: float = 0.9, seed: int | None = None) -> None:
        self.approval_rate = approval_rate
        self.outcome: AuthorizationResult | None = None
        self.unavailable: bool = False
        self.calls: list[str] = []
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def configure(self, outcome: AuthorizationResult | None = None, unavailable: bool = False) -> None:
        """Pin the decision (``None`` restores the random approval rate)."""
        self.outcome = outcome
        self.unavailable = unavailable

    def authorize(self, credit_card_number: str) -> AuthorizationResult:
        with self._lock:
            self.calls.append(credit_card_number)
            roll = self._random.random()

        if self.unavailable:
            raise AuthorizationServiceError("Fake authorizer configured as unavailable")

        if not is_well_formed(credit_card_number):
            logger.warning("Fake authorizer rejected card format")
            raise MalformedCardTokenError()

        if self.outcome is not None:
            result = self.outcome
        else:
            result = AuthorizationResult.AUTHORIZED if roll < self.approval_rate else AuthorizationResult.DECLINED

        logger.info(
            "Fake authorizer decision",
            card=mask_card_number(credit_card_number),
            result=result.value,
        )
        return result
