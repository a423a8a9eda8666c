"""
Shared fixtures: an in-memory ledger standing in for the Solana RPC.
"""
import asyncio
from collections import deque
from types import SimpleNamespace

import base58
import pytest
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from chain_config import (
    DEFAULT_PLATFORM_FEE_BPS,
    MAX_HOST_FEE_BPS,
    MAX_PRIZE_POOL_BPS,
    MIN_CHARITY_BPS,
    PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from room_program.admin import RoomProgramAdmin
from room_program.client import RoomProgramClient
from room_program.layouts import (
    encode_global_config,
    encode_player_entry,
    encode_room,
    encode_token_registry,
)
from room_program.models import GlobalConfig, PlayerEntry, PrizeMode, Room, RoomStatus, TokenRegistry
from room_program.pda import (
    derive_global_config_pda,
    derive_player_entry_pda,
    derive_room_pda,
    derive_room_vault_pda,
    derive_token_registry_pda,
)
from room_program.submitter import TransactionSubmitter
from security.audit import audit_logger
from spl.token.instructions import get_associated_token_address
from wallets import SolanaKeypairWallet

DEVNET_GENESIS = "EtWTRABZaYq6iMfeYKouRu166VU2xqa1wcaWoxPkrZBG"
MAINNET_GENESIS = "5eykt4UsFv8P8NJdTREpY1vzqKqZKvdpKuc147dw2N9d"


def rpc_error(message: str, logs=None) -> RPCException:
    return RPCException({"code": -32002, "message": message, "data": {"logs": logs or [], "err": None}})


class FakeRpc:
    """Async stand-in for AsyncClient backed by a dict of accounts.

    ``send_hooks`` run in order, one per send; a hook may mutate the ledger
    (to play the program's part) and may raise to simulate a node error.
    """

    def __init__(self, genesis: str = DEVNET_GENESIS):
        self.genesis = genesis
        self.slot = 1000
        self.accounts = {}
        self.simulations = []
        self.sent = []
        self.simulation_results = deque()
        self.send_hooks = deque()
        self.status_err = None
        self.closed = False

    def put(self, address: Pubkey, data: bytes, owner: Pubkey = PROGRAM_ID):
        self.accounts[address] = SimpleNamespace(data=bytes(data), owner=owner, lamports=1_000_000)

    def remove(self, address: Pubkey):
        self.accounts.pop(address, None)

    async def get_genesis_hash(self):
        return SimpleNamespace(value=self.genesis)

    async def get_account_info(self, address, commitment=None, encoding="base64"):
        return SimpleNamespace(
            value=self.accounts.get(address),
            context=SimpleNamespace(slot=self.slot),
        )

    async def get_program_accounts(self, program_id, commitment=None, encoding=None, filters=None):
        matches = []
        for address, account in self.accounts.items():
            if account.owner != program_id:
                continue
            if all(self._memcmp(account.data, f) for f in filters or []):
                matches.append(SimpleNamespace(pubkey=address, account=account))
        return SimpleNamespace(value=matches)

    @staticmethod
    def _memcmp(data: bytes, opts) -> bool:
        expected = base58.b58decode(opts.bytes)
        return data[opts.offset:opts.offset + len(expected)] == expected

    async def get_latest_blockhash(self, commitment=None):
        self.slot += 1
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.new_unique(), last_valid_block_height=self.slot + 150))

    async def simulate_transaction(self, txn, sig_verify=False, commitment=None):
        self.simulations.append(txn)
        if self.simulation_results:
            err, logs = self.simulation_results.popleft()
        else:
            err, logs = None, ["Program log: ok"]
        return SimpleNamespace(value=SimpleNamespace(err=err, logs=logs, units_consumed=12_000))

    async def send_raw_transaction(self, txn: bytes, opts=None):
        tx = Transaction.from_bytes(txn)
        self.sent.append(tx)
        if self.send_hooks:
            self.send_hooks.popleft()(tx)
        return SimpleNamespace(value=tx.signatures[0])

    async def get_signature_statuses(self, signatures, search_transaction_history=False):
        return SimpleNamespace(value=[
            SimpleNamespace(err=self.status_err, confirmation_status="confirmed", confirmations=1)
            for _ in signatures
        ])

    async def close(self):
        self.closed = True


class Ledger:
    """Helpers for seeding FakeRpc with program and token accounts."""

    def __init__(self, rpc: FakeRpc):
        self.rpc = rpc
        self.mint = Keypair().pubkey()
        self.platform_wallet = Keypair().pubkey()
        self.charity_wallet = Keypair().pubkey()

    def put_config(self, admin: Pubkey, **overrides) -> GlobalConfig:
        fields = dict(
            admin=admin,
            platform_wallet=self.platform_wallet,
            charity_wallet=self.charity_wallet,
            platform_fee_bps=DEFAULT_PLATFORM_FEE_BPS,
            max_host_fee_bps=MAX_HOST_FEE_BPS,
            max_prize_pool_bps=MAX_PRIZE_POOL_BPS,
            min_charity_bps=MIN_CHARITY_BPS,
            emergency_pause=False,
            bump=255,
        )
        fields.update(overrides)
        config = GlobalConfig(**fields)
        self.rpc.put(derive_global_config_pda().address, encode_global_config(config))
        return config

    def put_registry(self, admin: Pubkey, mints=None, version: str = "v4") -> TokenRegistry:
        registry = TokenRegistry(admin=admin, approved_tokens=[self.mint] if mints is None else list(mints), bump=254)
        self.rpc.put(derive_token_registry_pda(version).address, encode_token_registry(registry))
        return registry

    def put_room(self, host: Pubkey, room_id: str = "quiz-night", **overrides) -> Room:
        fields = dict(
            room_id=room_id,
            host=host,
            charity_wallet=self.charity_wallet,
            fee_token_mint=self.mint,
            entry_fee=1_000_000,
            host_fee_bps=500,
            prize_pool_bps=2500,
            charity_bps=5000,
            prize_mode=PrizeMode.POOL_SPLIT,
            prize_distribution=[100],
            status=RoomStatus.READY,
            player_count=0,
            max_players=100,
            total_collected=0,
            total_entry_fees=0,
            total_extras_fees=0,
            ended=False,
            creation_slot=900,
            expiration_slot=0,
            charity_memo="school roof",
            winners=[None, None, None],
            prize_assets=[None, None, None],
            bump=253,
        )
        fields.update(overrides)
        room = Room(**fields)
        room.address = derive_room_pda(host, room_id).address
        self.rpc.put(room.address, encode_room(room))
        return room

    def put_player_entry(self, room: Room, player: Pubkey, extras: int = 0) -> PlayerEntry:
        address = derive_player_entry_pda(room.address, player).address
        entry = PlayerEntry(
            player=player,
            room=room.address,
            entry_paid=room.entry_fee,
            extras_paid=extras,
            total_paid=room.entry_fee + extras,
            join_slot=self.rpc.slot,
            bump=252,
            address=address,
        )
        self.rpc.put(address, encode_player_entry(entry))
        return entry

    def put_token_account(self, owner: Pubkey, amount: int, mint: Pubkey = None) -> Pubkey:
        mint = mint or self.mint
        address = get_associated_token_address(owner, mint)
        data = bytes(mint) + bytes(owner) + amount.to_bytes(8, "little") + bytes(165 - 72)
        self.rpc.put(address, data, owner=TOKEN_PROGRAM_ID)
        return address

    def put_vault(self, room: Room, amount: int) -> Pubkey:
        address = derive_room_vault_pda(room.address).address
        data = bytes(room.fee_token_mint) + bytes(room.address) + amount.to_bytes(8, "little") + bytes(165 - 72)
        self.rpc.put(address, data, owner=TOKEN_PROGRAM_ID)
        return address


def connect_wallet(rpc, keypair: Keypair = None, expected_network: str = "devnet") -> SolanaKeypairWallet:
    wallet = SolanaKeypairWallet(keypair or Keypair(), rpc=rpc, expected_network=expected_network)
    result = asyncio.run(wallet.connect())
    assert result.ok
    return wallet


def fast_submitter(rpc) -> TransactionSubmitter:
    return TransactionSubmitter(
        rpc,
        max_attempts=3,
        retry_base_delay=0,
        retry_max_delay=0,
        confirm_timeout=0,
        poll_interval=0,
        simulation_timeout=5,
    )


@pytest.fixture(autouse=True)
def clean_audit_log():
    audit_logger.clear()
    yield
    audit_logger.clear()


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def ledger(rpc):
    return Ledger(rpc)


@pytest.fixture
def player_wallet(rpc):
    return connect_wallet(rpc)


@pytest.fixture
def host_wallet(rpc):
    return connect_wallet(rpc)


@pytest.fixture
def admin_wallet(rpc):
    return connect_wallet(rpc)


@pytest.fixture
def make_client(rpc):
    def factory(wallet, admin: bool = False):
        cls = RoomProgramAdmin if admin else RoomProgramClient
        return cls(rpc, wallet, submitter=fast_submitter(rpc))
    return factory
