"""Typed failures raised by the inscription builders.

None of these are retried internally. Callers decide whether to re-source
UTXOs, raise the fee rate, or resize the commit output.
"""

from __future__ import annotations


class OrdinalsError(Exception):
    """Base class for inscription build failures."""


class InsufficientFunds(OrdinalsError):
    """Raised when the funding inputs cannot cover the commit output and fee."""

    def __init__(self, needed: int, available: int) -> None:
        super().__init__(
            f"Insufficient funds: needed {needed} sats, available {available} sats"
        )
        self.needed = needed
        self.available = available


class DustViolation(OrdinalsError):
    """Raised when an output would fall below the dust limit."""

    def __init__(self, amount: int, dust_limit: int) -> None:
        super().__init__(
            f"Output of {amount} sats is below the dust limit of {dust_limit} sats"
        )
        self.amount = amount
        self.dust_limit = dust_limit


class UnsupportedScriptType(OrdinalsError, ValueError):
    """Raised for address or UTXO types outside P2PKH/P2SH/P2WPKH/P2TR."""


class MalformedAddress(OrdinalsError, ValueError):
    """Raised when an address fails to parse under every recognized scheme."""


class EncodingOverflow(OrdinalsError, ValueError):
    """Raised when data exceeds the representable push-data range."""
