"""
Associated token account planning.

Resolves the token account an owner needs for a mint and decides whether a
create instruction has to be prepended. Nothing here submits transactions.
"""
import logging
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional

from solana.rpc.commitment import Commitment, Confirmed
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import create_associated_token_account, get_associated_token_address

from chain_config import TOKEN_PROGRAM_ID
from utils.formatting import truncate_address
from .errors import RPC_ERRORS, InsufficientBalance, InvalidTokenAccount, RpcUnavailable

logger = logging.getLogger(__name__)

# SPL token account layout: mint (32) | owner (32) | amount (u64 LE) | ...
TOKEN_ACCOUNT_MIN_SIZE = 72


@dataclass
class TokenAccountInfo:
    mint: Pubkey
    owner: Pubkey
    amount: int


@dataclass
class TokenAccountPlan:
    """Where an owner's tokens for a mint live, and how to make sure they can."""
    address: Pubkey
    owner: Pubkey
    mint: Pubkey
    exists: bool
    balance: int = 0
    create_instruction: Optional[Instruction] = None

    @property
    def needs_create(self) -> bool:
        return self.create_instruction is not None

    def ensure_balance(self, required: int):
        """Raise InsufficientBalance locally instead of letting the chain revert."""
        if self.balance < required:
            raise InsufficientBalance(
                required,
                self.balance,
                account=self.address,
                mint=self.mint,
            )


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, mint)


def parse_token_account(data: bytes) -> TokenAccountInfo:
    data = bytes(data)
    if len(data) < TOKEN_ACCOUNT_MIN_SIZE:
        raise InvalidTokenAccount(f"Token account data too short ({len(data)} bytes)")
    mint = Pubkey.from_bytes(data[0:32])
    owner = Pubkey.from_bytes(data[32:64])
    (amount,) = struct.unpack_from("<Q", data, 64)
    return TokenAccountInfo(mint=mint, owner=owner, amount=amount)


async def resolve_or_prepare_token_account(
    rpc,
    owner: Pubkey,
    mint: Pubkey,
    payer: Optional[Pubkey] = None,
    commitment: Commitment = Confirmed,
) -> TokenAccountPlan:
    """Look up the ATA for (owner, mint).

    A missing account is benign: the plan carries a create instruction paid by
    ``payer`` (defaults to the owner). Any other read failure is fatal.

    Raises:
        RpcUnavailable: the account could not be read
        InvalidTokenAccount: the account exists but is not a token account for
            this owner and mint
    """
    address = associated_token_address(owner, mint)

    try:
        resp = await rpc.get_account_info(address, commitment=commitment)
    except RPC_ERRORS as e:
        logger.error(f"[ATA] Failed to read token account {address}: {e}")
        raise RpcUnavailable(f"Could not read token account {address}: {e}") from e

    account = resp.value
    if account is None:
        logger.info(
            f"[ATA] No token account for {truncate_address(str(owner))} "
            f"(mint {truncate_address(str(mint))}), will create"
        )
        return TokenAccountPlan(
            address=address,
            owner=owner,
            mint=mint,
            exists=False,
            balance=0,
            create_instruction=create_associated_token_account(payer or owner, owner, mint),
        )

    if account.owner != TOKEN_PROGRAM_ID:
        raise InvalidTokenAccount(
            f"Account {address} is owned by {account.owner}, not the token program"
        )

    info = parse_token_account(account.data)
    if info.mint != mint or info.owner != owner:
        raise InvalidTokenAccount(
            f"Token account {address} holds mint {info.mint} for {info.owner}",
            expected_mint=mint,
            expected_owner=owner,
        )

    logger.debug(f"[ATA] {truncate_address(str(address))} balance {info.amount}")
    return TokenAccountPlan(
        address=address,
        owner=owner,
        mint=mint,
        exists=True,
        balance=info.amount,
    )


def prepend_create_instructions(
    plans: Iterable[TokenAccountPlan],
    instructions: List[Instruction],
) -> List[Instruction]:
    """Put each needed create instruction ahead of the instructions using it.

    The same address is only created once even if it appears in several plans.
    """
    creates = []
    seen = set()
    for plan in plans:
        if plan.needs_create and plan.address not in seen:
            seen.add(plan.address)
            creates.append(plan.create_instruction)
    return creates + list(instructions)
