"""
Input validation utilities.
"""
from typing import Tuple

import base58

from chain_config import BPS_DENOMINATOR, MAX_CHARITY_MEMO_BYTES, MAX_ROOM_ID_BYTES

U64_MAX = 2 ** 64 - 1

BASE58_CHARS = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def is_valid_solana_address(address: str) -> Tuple[bool, str]:
    """Validate Solana public key format.

    Args:
        address: Base58 public key to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not address:
        return False, "Address is required"

    if not isinstance(address, str):
        return False, "Address must be a string"

    if len(address) < 32 or len(address) > 44:
        return False, "Invalid address length"

    # Check for valid base58 characters (no 0, O, I, l)
    if not all(c in BASE58_CHARS for c in address):
        return False, "Address contains invalid characters"

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        return False, f"Failed to decode address: {e}"
    if len(decoded) != 32:
        return False, "Invalid address format (must be 32 bytes when decoded)"

    return True, ""


def is_valid_room_id(room_id: str) -> Tuple[bool, str]:
    """Room ids become PDA seeds, so the limit is in UTF-8 bytes, not characters."""
    if not room_id or not isinstance(room_id, str):
        return False, "Room id is required"

    size = len(room_id.encode("utf-8"))
    if size > MAX_ROOM_ID_BYTES:
        return False, f"Room id is {size} bytes, max is {MAX_ROOM_ID_BYTES}"

    return True, ""


def is_valid_charity_memo(memo: str) -> Tuple[bool, str]:
    if not isinstance(memo, str):
        return False, "Memo must be a string"

    size = len(memo.encode("utf-8"))
    if size > MAX_CHARITY_MEMO_BYTES:
        return False, f"Memo is {size} bytes, max is {MAX_CHARITY_MEMO_BYTES}"

    return True, ""


def is_valid_token_amount(amount: int, allow_zero: bool = True) -> Tuple[bool, str]:
    """Validate an amount in token base units (u64 on-chain).

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(amount, int) or isinstance(amount, bool):
        return False, "Amount must be an integer number of base units"

    if amount < 0:
        return False, "Amount must not be negative"

    if amount == 0 and not allow_zero:
        return False, "Amount must be greater than 0"

    if amount > U64_MAX:
        return False, "Amount exceeds u64 range"

    return True, ""


def is_valid_bps(value: int) -> Tuple[bool, str]:
    if not isinstance(value, int) or isinstance(value, bool):
        return False, "Basis points must be an integer"

    if value < 0 or value > BPS_DENOMINATOR:
        return False, f"Basis points must be between 0 and {BPS_DENOMINATOR}"

    return True, ""
