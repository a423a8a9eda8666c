"""
Fund split calculation.

Mirrors the on-chain settlement in end_room/recover_room: every share is
floor(amount * bps / 10000) in integer math, and charity takes whatever is
left so the four amounts always sum to the collected total.
"""
from dataclasses import dataclass
from typing import Tuple

from chain_config import BPS_DENOMINATOR, RECOVERY_PLATFORM_PCT
from .errors import InvalidParameters


@dataclass(frozen=True)
class SplitPreview:
    charity: int
    host: int
    prize: int
    platform: int

    @property
    def total(self) -> int:
        return self.charity + self.host + self.prize + self.platform


def calculate_bps(amount: int, bps: int) -> int:
    """Floor of amount * bps / 10000."""
    return amount * bps // BPS_DENOMINATOR


def _check_bps(name: str, value: int):
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidParameters(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > BPS_DENOMINATOR:
        raise InvalidParameters(f"{name} must be between 0 and {BPS_DENOMINATOR}, got {value}")


def split(
    total_collected: int,
    host_bps: int,
    prize_bps: int,
    platform_bps: int,
    extras: int = 0,
) -> SplitPreview:
    """Split collected funds between charity, host, prize pool and platform.

    Fee percentages apply to entry fees only (``total_collected - extras``);
    extras go to charity in full, together with any rounding dust.

    Raises:
        InvalidParameters: negative amounts, bps out of range, bps summing
            above 10000 or extras exceeding the total
    """
    if not isinstance(total_collected, int) or total_collected < 0:
        raise InvalidParameters(f"Total collected must be a non-negative integer, got {total_collected!r}")
    if not isinstance(extras, int) or extras < 0:
        raise InvalidParameters(f"Extras must be a non-negative integer, got {extras!r}")
    if extras > total_collected:
        raise InvalidParameters(f"Extras ({extras}) exceed total collected ({total_collected})")

    _check_bps("host_bps", host_bps)
    _check_bps("prize_bps", prize_bps)
    _check_bps("platform_bps", platform_bps)
    if host_bps + prize_bps + platform_bps > BPS_DENOMINATOR:
        raise InvalidParameters(
            f"Fee bps sum to {host_bps + prize_bps + platform_bps}, max is {BPS_DENOMINATOR}"
        )

    entry_fees = total_collected - extras
    platform = calculate_bps(entry_fees, platform_bps)
    host = calculate_bps(entry_fees, host_bps)
    prize = calculate_bps(entry_fees, prize_bps)
    charity = total_collected - platform - host - prize

    return SplitPreview(charity=charity, host=host, prize=prize, platform=platform)


def validate_fee_bounds(platform_fee_bps: int, max_host_fee_bps: int, max_prize_pool_bps: int, min_charity_bps: int):
    """Check the GlobalConfig invariant platform + host + prize <= 10000 - charity."""
    _check_bps("platform_fee_bps", platform_fee_bps)
    _check_bps("max_host_fee_bps", max_host_fee_bps)
    _check_bps("max_prize_pool_bps", max_prize_pool_bps)
    _check_bps("min_charity_bps", min_charity_bps)

    allocated = platform_fee_bps + max_host_fee_bps + max_prize_pool_bps
    if allocated > BPS_DENOMINATOR - min_charity_bps:
        raise InvalidParameters(
            f"Platform + max host + max prize = {allocated} bps leaves less than "
            f"the minimum charity share of {min_charity_bps} bps"
        )


def validate_room_fees(host_fee_bps: int, prize_pool_bps: int, config) -> int:
    """Check a room's fees against GlobalConfig bounds.

    Returns:
        The charity bps the room will end up with.
    """
    _check_bps("host_fee_bps", host_fee_bps)
    _check_bps("prize_pool_bps", prize_pool_bps)

    if host_fee_bps > config.max_host_fee_bps:
        raise InvalidParameters(
            f"Host fee {host_fee_bps} bps exceeds maximum {config.max_host_fee_bps} bps"
        )
    if prize_pool_bps > config.max_prize_pool_bps:
        raise InvalidParameters(
            f"Prize pool {prize_pool_bps} bps exceeds maximum {config.max_prize_pool_bps} bps"
        )

    charity_bps = BPS_DENOMINATOR - config.platform_fee_bps - host_fee_bps - prize_pool_bps
    if charity_bps < config.min_charity_bps:
        raise InvalidParameters(
            f"Charity share {charity_bps} bps is below minimum {config.min_charity_bps} bps"
        )
    return charity_bps


def recovery_split(total_collected: int) -> Tuple[int, int]:
    """Split for an abandoned room: 90% refunded to players, 10% to platform.

    Returns:
        Tuple of (refund_total, platform_fee)
    """
    if total_collected < 0:
        raise InvalidParameters(f"Total collected must be non-negative, got {total_collected}")
    platform_fee = total_collected * RECOVERY_PLATFORM_PCT // 100
    return total_collected - platform_fee, platform_fee
