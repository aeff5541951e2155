"""Base58 public-key validation helpers."""

from __future__ import annotations

from typing import Optional

from solders.pubkey import Pubkey


class InvalidAddressError(ValueError):
    """Raised when a string is not a well-formed Solana public key."""


def parse_address(value: Optional[str]) -> Pubkey:
    if not isinstance(value, str) or not value.strip():
        raise InvalidAddressError(f"Invalid Solana address: {value!r}")
    try:
        return Pubkey.from_string(value.strip())
    except (ValueError, TypeError) as exc:
        raise InvalidAddressError(f"Invalid Solana address: {value!r}") from exc


def validate_address(value: Optional[str]) -> str:
    """Return the canonical base58 form of *value* or raise ``InvalidAddressError``."""

    return str(parse_address(value))


__all__ = ["InvalidAddressError", "parse_address", "validate_address"]
