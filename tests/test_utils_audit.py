import pytest
from solders.keypair import Keypair

from chain_config import get_token_mint
from security.audit import AuditEventType, AuditLogger, AuditSeverity
from utils import (
    format_account_link,
    format_bps,
    format_token_amount,
    format_tx_link,
    is_valid_bps,
    is_valid_charity_memo,
    is_valid_room_id,
    is_valid_solana_address,
    is_valid_token_amount,
    parse_token_amount,
    truncate_address,
)


# ===== VALIDATION =====

def test_solana_address_validation():
    assert is_valid_solana_address(str(Keypair().pubkey())) == (True, "")
    assert is_valid_solana_address("")[0] is False
    assert is_valid_solana_address("0OIl" * 10)[0] is False


def test_room_id_limit_is_in_bytes():
    assert is_valid_room_id("a" * 32)[0]
    assert not is_valid_room_id("a" * 33)[0]
    assert not is_valid_room_id("ü" * 17)[0]
    assert not is_valid_room_id("")[0]


def test_charity_memo_limit():
    assert is_valid_charity_memo("")[0]
    assert is_valid_charity_memo("m" * 28)[0]
    assert not is_valid_charity_memo("m" * 29)[0]


def test_token_amount_validation():
    assert is_valid_token_amount(0)[0]
    assert not is_valid_token_amount(0, allow_zero=False)[0]
    assert not is_valid_token_amount(-1)[0]
    assert not is_valid_token_amount(2 ** 64)[0]
    assert not is_valid_token_amount(1.5)[0]
    assert not is_valid_token_amount(True)[0]


def test_bps_validation():
    assert is_valid_bps(10_000)[0]
    assert not is_valid_bps(10_001)[0]


# ===== FORMATTING =====

def test_token_amount_formatting():
    assert format_token_amount(1_500_000) == "1.5"
    assert format_token_amount(1_000_000) == "1"
    assert format_token_amount(1_234_567_890_000) == "1,234,567.89"
    assert format_token_amount(42, decimals=0) == "42"
    assert format_token_amount(100, decimals=0) == "100"


def test_token_amount_parsing():
    assert parse_token_amount("1.5") == 1_500_000
    assert parse_token_amount("1,000") == 1_000_000_000
    with pytest.raises(ValueError):
        parse_token_amount("0.0000001")
    with pytest.raises(ValueError):
        parse_token_amount("abc")


def test_bps_formatting():
    assert format_bps(250) == "2.5%"
    assert format_bps(2000) == "20%"


def test_explorer_links_carry_cluster():
    assert format_tx_link("sig", "devnet") == "https://solscan.io/tx/sig?cluster=devnet"
    assert format_tx_link("sig", "mainnet-beta") == "https://solscan.io/tx/sig"
    assert format_account_link("addr", "testnet").endswith("?cluster=testnet")


def test_truncate_address():
    assert truncate_address("ABCDEFGHIJKL") == "ABCD...IJKL"
    assert truncate_address("ABC") == "ABC"


# ===== AUDIT =====

def test_audit_filters_and_summary():
    audit = AuditLogger(max_events=10)
    audit.log(AuditEventType.PLAYER_JOINED, actor="alice")
    audit.log(AuditEventType.UNAUTHORIZED_ATTEMPT, AuditSeverity.WARNING, actor="mallory")
    audit.log(AuditEventType.EMERGENCY_PAUSE, AuditSeverity.CRITICAL, actor="admin")

    assert [e["actor"] for e in audit.get_recent_events()] == ["admin", "mallory", "alice"]
    assert len(audit.get_recent_events(severity=AuditSeverity.WARNING)) == 1
    assert audit.get_recent_events(actor="alice")[0]["event_type"] == "player_joined"

    summary = audit.get_security_summary()
    assert summary["total_critical"] == 1
    assert summary["total_warnings"] == 1


def test_audit_keeps_bounded_history():
    audit = AuditLogger(max_events=3)
    for i in range(5):
        audit.log(AuditEventType.PLAYER_JOINED, actor=str(i))

    assert [e["actor"] for e in audit.get_recent_events()] == ["4", "3", "2"]


# ===== CONFIG =====

def test_known_mint_lookup():
    assert str(get_token_mint("usdc", "mainnet-beta")) == "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    assert str(get_token_mint("USDC", "devnet")) == "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"
    with pytest.raises(KeyError):
        get_token_mint("USDC", "testnet")
