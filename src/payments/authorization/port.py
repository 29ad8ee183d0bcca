"""Card authorization port (abstract interface).

Defines the contract that all card authorizer adapters must implement.
The decision itself is opaque: an adapter answers AUTHORIZED or DECLINED,
or raises when the card fails the format precondition or the service
cannot be reached. Callers must be able to tell all four apart.
"""

import re
from abc import ABC, abstractmethod
from enum import Enum

from protean.exceptions import ValidationError

CARD_NUMBER_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{4}-[0-9]{4}-[0-9]{4}$")


class MalformedCardTokenError(ValidationError):
    """The card number failed the DDDD-DDDD-DDDD-DDDD precondition."""

    code = "INVALID_CARD_FORMAT"
    http_status = 400

    def __init__(self, message: str = "Credit card number must be in format XXXX-XXXX-XXXX-XXXX") -> None:
        super().__init__({"credit_card_number": [message]})


class AuthorizationServiceError(Exception):
    """The authorization service was unreachable or answered with an error.

    Never to be treated as a decline.
    """

    code = "AUTHORIZATION_UNAVAILABLE"
    http_status = 500


class AuthorizationResult(Enum):
    AUTHORIZED = "Authorized"
    DECLINED = "Declined"


def is_well_formed(credit_card_number: str | None) -> bool:
    """Return True if the card number matches DDDD-DDDD-DDDD-DDDD."""
    return isinstance(credit_card_number, str) and CARD_NUMBER_PATTERN.match(credit_card_number) is not None


class CardAuthorizer(ABC):
    """Abstract card authorizer interface."""

    @abstractmethod
    def authorize(self, credit_card_number: str) -> AuthorizationResult:
        """Ask the authorization service for a decision on a card.

        Raises:
            MalformedCardTokenError: the service rejected the card format.
            AuthorizationServiceError: the service is unreachable or failed.
        """
        ...
