"""
Transaction assembly.

Turns an ordered instruction list into an unsigned transaction. Knows nothing
about what the instructions do.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from solana.rpc.commitment import Commitment, Confirmed
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from .errors import RPC_ERRORS, RpcUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FreshnessAnchor:
    """Recent blockhash plus the last block height at which it is valid."""
    blockhash: Hash
    last_valid_block_height: Optional[int] = None


@dataclass
class BuiltTransaction:
    transaction: Transaction
    fee_payer: Pubkey
    anchor: FreshnessAnchor
    instructions: List[Instruction]

    @property
    def blockhash(self) -> Hash:
        return self.anchor.blockhash


async def fetch_freshness_anchor(rpc, commitment: Commitment = Confirmed) -> FreshnessAnchor:
    """Get a recent blockhash to anchor a new transaction."""
    try:
        resp = await rpc.get_latest_blockhash(commitment)
    except RPC_ERRORS as e:
        logger.error(f"[TX] Failed to fetch latest blockhash: {e}")
        raise RpcUnavailable(f"Could not fetch latest blockhash: {e}") from e
    return FreshnessAnchor(
        blockhash=resp.value.blockhash,
        last_valid_block_height=resp.value.last_valid_block_height,
    )


def build_transaction(
    instructions: Sequence[Instruction],
    fee_payer: Pubkey,
    anchor: FreshnessAnchor,
) -> BuiltTransaction:
    """Assemble an unsigned transaction, preserving instruction order.

    Raises:
        ValueError: if no instructions are given
    """
    instructions = list(instructions)
    if not instructions:
        raise ValueError("Cannot build a transaction without instructions")

    message = Message.new_with_blockhash(instructions, fee_payer, anchor.blockhash)
    tx = Transaction.new_unsigned(message)

    logger.debug(f"[TX] Built transaction with {len(instructions)} instruction(s), payer {fee_payer}")
    return BuiltTransaction(
        transaction=tx,
        fee_payer=fee_payer,
        anchor=anchor,
        instructions=instructions,
    )
