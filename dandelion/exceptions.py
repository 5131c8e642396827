"""Errors raised before or around a distribution run."""

from decimal import Decimal
from typing import Union

from dandelion.utils import format_number


class AirdropError(Exception):
    """Base class for fatal airdrop errors."""


class ConfigurationError(AirdropError, ValueError):
    """Missing or invalid configuration (credentials, numbers, network)."""


class NoTokensError(AirdropError):
    """The payer wallet holds no token with a positive balance."""


class InsufficientBalanceError(AirdropError):
    """Token or SOL balance is below what the distribution needs. Amounts are in display units."""

    def __init__(self, required: Union[int, Decimal], available: Union[int, Decimal], unit: str):
        self.required = required
        self.available = available
        self.unit = unit
        super().__init__(
            f"Insufficient {unit}: required {format_number(required)} {unit}, "
            f"available {format_number(available)} {unit}"
        )
