"""HTTP adapter for the credit card authorization service.

Response contract of ``POST {"credit_card_number": "..."}``:
- 2xx: authorized (the body is empty)
- 400: malformed card number
- 402: declined
Any other status, a timeout or a connection failure is a service error.
"""

import requests
import structlog

from payments.authorization.port import (
    AuthorizationResult,
    AuthorizationServiceError,
    CardAuthorizer,
    MalformedCardTokenError,
)
from shared.logging import mask_card_number

logger = structlog.get_logger(__name__)


class HttpAuthorizer(CardAuthorizer):
    """Calls the remote authorization service with a bounded timeout."""

    def __init__(self, url: str, timeout: float = 5.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def authorize(self, credit_card_number: str) -> AuthorizationResult:
        card = mask_card_number(credit_card_number)
        try:
            response = self.session.post(
                self.url,
                json={"credit_card_number": credit_card_number},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            logger.error("Authorization service timed out", url=self.url, timeout=self.timeout, card=card)
            raise AuthorizationServiceError(f"Authorization timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            logger.error("Authorization service unreachable", url=self.url, card=card, error=repr(exc))
            raise AuthorizationServiceError("Failed to reach authorization service") from exc

        status = response.status_code
        if 200 <= status < 300:
            logger.info("Card authorized", card=card, status=status)
            return AuthorizationResult.AUTHORIZED
        if status == 402:
            logger.info("Card declined", card=card, status=status)
            return AuthorizationResult.DECLINED
        if status == 400:
            logger.warning("Authorization service rejected card format", card=card)
            raise MalformedCardTokenError()

        logger.error("Authorization service error", card=card, status=status)
        raise AuthorizationServiceError(f"Authorization service answered {status}")
