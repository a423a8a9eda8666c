"""
Formatting utilities for display.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional

from chain_config import explorer_cluster


def format_token_amount(base_units: int, decimals: int = 6) -> str:
    """Format base units as a human amount, e.g. 1500000 -> "1.5"."""
    value = Decimal(base_units) / (Decimal(10) ** decimals)
    text = f"{value:,.{decimals}f}"
    if decimals > 0:
        text = text.rstrip("0").rstrip(".")
    return text


def parse_token_amount(text: str, decimals: int = 6) -> int:
    """Parse a human amount into base units, rejecting excess precision."""
    try:
        value = Decimal(text.replace(",", "").strip())
    except InvalidOperation:
        raise ValueError(f"Not a number: {text!r}") from None

    scaled = value * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{text} has more than {decimals} decimal places")
    if scaled < 0:
        raise ValueError("Amount must not be negative")
    return int(scaled)


def format_bps(bps: int) -> str:
    """Format basis points as a percentage, e.g. 250 -> "2.5%"."""
    return f"{bps / 100:g}%"


def format_tx_link(signature: str, network: Optional[str] = None) -> str:
    """Format Solana transaction explorer link."""
    cluster = explorer_cluster(network)
    link = f"https://solscan.io/tx/{signature}"
    if cluster != "mainnet":
        link += f"?cluster={cluster}"
    return link


def format_account_link(address: str, network: Optional[str] = None) -> str:
    """Format Solana account explorer link."""
    cluster = explorer_cluster(network)
    link = f"https://solscan.io/account/{address}"
    if cluster != "mainnet":
        link += f"?cluster={cluster}"
    return link


def truncate_address(address: str, start: int = 4, end: int = 4) -> str:
    """Truncate wallet address for display."""
    if len(address) <= start + end:
        return address
    return f"{address[:start]}...{address[-end:]}"
