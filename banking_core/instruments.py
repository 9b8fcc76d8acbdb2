"""
Funding Instrument Validation Module

Acceptance rules for the external instruments an account can be funded from.
Validation is a pure function of the instrument data: no storage, no side effects.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

MIN_CARD_DIGITS = 13
MAX_CARD_DIGITS = 19

_NON_DIGITS = re.compile(r'\D')


class FundingSourceType(Enum):
    """Kinds of external funding instrument"""
    CARD = "card"
    BANK = "bank"


class InstrumentRejection(Enum):
    """Why an instrument was refused; value is the caller-facing message"""
    INVALID_CARD = "Invalid card number (Luhn check failed or invalid length)"
    ROUTING_NUMBER_REQUIRED = "Routing number is required for bank transfers"

    @property
    def message(self) -> str:
        return self.value


class CardBrand(Enum):
    """Card networks recognised by IIN prefix"""
    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    DISCOVER = "discover"
    DINERS = "diners"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FundingSource:
    """External card or bank account used to fund a deposit"""
    type: FundingSourceType
    account_number: str
    routing_number: Optional[str] = None

    @property
    def is_card(self) -> bool:
        return self.type == FundingSourceType.CARD


def sanitize_digits(number: str) -> str:
    return _NON_DIGITS.sub('', number or '')


def luhn_checksum_valid(number: str) -> bool:
    """Mod-10 check: from the right, double every second digit, minus 9 if over 9"""
    digits = sanitize_digits(number)
    if not digits:
        return False

    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit

    return total % 10 == 0


def is_valid_card_number(number: str) -> bool:
    """Card numbers must be 13-19 digits and pass the Luhn checksum"""
    digits = sanitize_digits(number)
    if not MIN_CARD_DIGITS <= len(digits) <= MAX_CARD_DIGITS:
        return False
    return luhn_checksum_valid(digits)


def detect_card_brand(number: str) -> CardBrand:
    """Best-effort network detection. Never a reason to reject a card."""
    digits = sanitize_digits(number)
    if digits.startswith('4'):
        return CardBrand.VISA
    if digits[:2] in ('34', '37'):
        return CardBrand.AMEX
    if digits[:2] in ('36', '38') or digits[:3] in ('300', '301', '302', '303', '304', '305'):
        return CardBrand.DINERS
    if digits[:2] in ('51', '52', '53', '54', '55') or (len(digits) >= 4 and '2221' <= digits[:4] <= '2720'):
        return CardBrand.MASTERCARD
    if digits.startswith('6011') or digits.startswith('65'):
        return CardBrand.DISCOVER
    return CardBrand.UNKNOWN


def validate_funding_source(source: FundingSource) -> Optional[InstrumentRejection]:
    """
    Check a funding source.

    Returns:
        None if the instrument is acceptable, otherwise the rejection reason.
        Card length and checksum failures share one reason.
    """
    if source.is_card:
        if not is_valid_card_number(source.account_number):
            return InstrumentRejection.INVALID_CARD
        return None

    if not (source.routing_number or '').strip():
        return InstrumentRejection.ROUTING_NUMBER_REQUIRED
    return None
