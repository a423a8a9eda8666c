"""Utility modules for the room program."""
from .formatting import (
    format_account_link,
    format_bps,
    format_token_amount,
    format_tx_link,
    parse_token_amount,
    truncate_address,
)
from .validation import (
    is_valid_bps,
    is_valid_charity_memo,
    is_valid_room_id,
    is_valid_solana_address,
    is_valid_token_amount,
)

__all__ = [
    "format_account_link",
    "format_bps",
    "format_token_amount",
    "format_tx_link",
    "parse_token_amount",
    "truncate_address",
    "is_valid_bps",
    "is_valid_charity_memo",
    "is_valid_room_id",
    "is_valid_solana_address",
    "is_valid_token_amount",
]
