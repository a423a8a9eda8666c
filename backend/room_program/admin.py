"""
Admin operations: platform config, token registry and abandoned room recovery.

All of these require the connected wallet to be GlobalConfig.admin. The check
is done locally before anything is built so an unauthorized call never gets
as far as a signature prompt.
"""
import logging
from typing import List, Optional

from solders.pubkey import Pubkey

from chain_config import REGISTRY_SEEDS
from security.audit import AuditEventType, AuditSeverity, audit_logger
from utils.formatting import truncate_address
from . import instructions as ix
from .client import RoomProgramClient, _pubkey
from .errors import (
    AlreadyApproved,
    InvalidParameters,
    NoFundsToRecover,
    NoPlayersFound,
    NotAdmin,
    NotInitialized,
    RegistryFull,
    RegistryVersionMismatch,
    RoomAlreadyEnded,
    TokenNotApproved,
)
from .fund_split import recovery_split
from .models import (
    AdminResult,
    GlobalConfig,
    GlobalConfigPatch,
    RecoverRoomResult,
    RegistryVersionReport,
)
from .pda import derive_room_vault_pda, registry_candidates
from .token_accounts import prepend_create_instructions, resolve_or_prepare_token_account

logger = logging.getLogger(__name__)


class RoomProgramAdmin(RoomProgramClient):
    """RoomProgramClient plus the admin-only instructions."""

    async def _require_admin(self, config: Optional[GlobalConfig] = None, action: str = "admin action"):
        caller = self._require_wallet()
        config = config or await self.fetch_global_config()
        if caller != config.admin:
            logger.warning(f"[ADMIN] 🚨 {truncate_address(str(caller))} attempted {action} without admin rights")
            audit_logger.log(
                event_type=AuditEventType.UNAUTHORIZED_ATTEMPT,
                severity=AuditSeverity.WARNING,
                actor=str(caller),
                details=f"{action} (admin is {config.admin})",
            )
            raise NotAdmin(f"{caller} is not the platform admin")
        return caller, config

    # ===== GLOBAL CONFIG =====

    async def initialize_global_config(self, platform_wallet: Pubkey, charity_wallet: Pubkey) -> AdminResult:
        """Create GlobalConfig with the connected wallet as admin. No-op if it exists."""
        admin = self._require_wallet()
        address = self.global_config_address

        if await self._account_exists(address):
            logger.info(f"[ADMIN] GlobalConfig already initialized at {address}")
            return AdminResult(signature=None, address=address, already_done=True)

        instruction = ix.initialize_ix(
            address, admin, _pubkey(platform_wallet), _pubkey(charity_wallet), program_id=self.program_id
        )
        receipt = await self._execute(
            "initialize",
            [instruction],
            recheck=lambda: self._account_exists(address),
        )

        audit_logger.log(
            event_type=AuditEventType.CONFIG_INITIALIZED,
            actor=str(admin),
            details=f"platform={platform_wallet} charity={charity_wallet}",
        )
        return AdminResult(receipt.signature, address, receipt.already_done)

    async def update_global_config(
        self,
        patch: GlobalConfigPatch,
        config: Optional[GlobalConfig] = None,
    ) -> AdminResult:
        """Apply a partial update to GlobalConfig.

        ``config`` is the snapshot the caller made the decision on; the merged
        result is validated against the fee bounds before anything is built.
        """
        admin, config = await self._require_admin(config, "update_global_config")
        updated = patch.apply(config)

        instruction = ix.update_global_config_ix(
            self.global_config_address, admin, patch, program_id=self.program_id
        )

        async def applied() -> bool:
            current = await self.fetch_global_config()
            return all(getattr(current, name) == value for name, value in patch.changes().items())

        logger.info(f"[ADMIN] Updating GlobalConfig (snapshot slot {config.slot}): {patch.changes()}")
        receipt = await self._execute("update_global_config", [instruction], recheck=applied)

        audit_logger.log(
            event_type=AuditEventType.CONFIG_UPDATED,
            severity=AuditSeverity.WARNING,
            actor=str(admin),
            details=(
                f"platform_fee={updated.platform_fee_bps} max_host={updated.max_host_fee_bps} "
                f"max_prize={updated.max_prize_pool_bps} min_charity={updated.min_charity_bps}"
            ),
        )
        return AdminResult(receipt.signature, self.global_config_address, receipt.already_done)

    async def set_emergency_pause(self, paused: bool) -> AdminResult:
        admin, config = await self._require_admin(action="set_emergency_pause")

        if config.emergency_pause == paused:
            logger.info(f"[ADMIN] Emergency pause already {'on' if paused else 'off'}")
            return AdminResult(None, self.global_config_address, already_done=True)

        instruction = ix.set_emergency_pause_ix(
            self.global_config_address, admin, paused, program_id=self.program_id
        )

        async def applied() -> bool:
            return (await self.fetch_global_config()).emergency_pause == paused

        receipt = await self._execute("set_emergency_pause", [instruction], recheck=applied)

        logger.warning(f"[ADMIN] {'🔴 Emergency pause ENABLED' if paused else '🟢 Emergency pause lifted'}")
        audit_logger.log(
            event_type=AuditEventType.EMERGENCY_PAUSE,
            severity=AuditSeverity.CRITICAL if paused else AuditSeverity.WARNING,
            actor=str(admin),
            details=f"paused={paused}",
        )
        return AdminResult(receipt.signature, self.global_config_address, receipt.already_done)

    # ===== TOKEN REGISTRY =====

    async def check_registry_version(self) -> RegistryVersionReport:
        """Report which registry versions have an account on-chain."""
        candidates = registry_candidates(self.program_id)
        found = []
        for version, derived in candidates.items():
            if await self._account_exists(derived.address):
                found.append(version)

        report = RegistryVersionReport(
            canonical_version=self.registry_version,
            canonical_address=candidates[self.registry_version].address,
            canonical_exists=self.registry_version in found,
            found_versions=found,
        )
        if report.mismatch:
            logger.warning(
                f"[REGISTRY] ⚠️ Canonical {self.registry_version} registry missing, "
                f"legacy versions present: {report.legacy_versions}"
            )
            audit_logger.log(
                event_type=AuditEventType.REGISTRY_VERSION_MISMATCH,
                severity=AuditSeverity.WARNING,
                details=f"canonical={self.registry_version} found={found}",
            )
        return report

    async def initialize_token_registry(self) -> AdminResult:
        """Create the canonical registry. Refuses if only a legacy one exists."""
        admin, _ = await self._require_admin(action="initialize_token_registry")
        report = await self.check_registry_version()
        address = report.canonical_address

        if report.canonical_exists:
            logger.info(f"[REGISTRY] {self.registry_version} registry already initialized at {address}")
            return AdminResult(None, address, already_done=True)
        if report.mismatch:
            raise RegistryVersionMismatch(
                f"Found legacy registry {report.legacy_versions}, use migrate_token_registry "
                f"to move its tokens into {self.registry_version}",
                found=report.legacy_versions,
            )

        instruction = ix.initialize_token_registry_ix(address, admin, program_id=self.program_id)
        receipt = await self._execute(
            "initialize_token_registry",
            [instruction],
            recheck=lambda: self._account_exists(address),
        )

        audit_logger.log(
            event_type=AuditEventType.REGISTRY_INITIALIZED,
            actor=str(admin),
            details=f"version={self.registry_version} address={address}",
        )
        return AdminResult(receipt.signature, address, receipt.already_done)

    async def _require_registry(self):
        registry = await self.fetch_token_registry()
        if registry is None:
            raise NotInitialized(f"Token registry ({self.registry_version}) is not initialized")
        return registry

    async def add_approved_token(self, mint: Pubkey) -> AdminResult:
        admin, _ = await self._require_admin(action="add_approved_token")
        mint = _pubkey(mint)
        registry = await self._require_registry()

        if registry.is_approved(mint):
            raise AlreadyApproved(f"{mint} is already approved")
        if registry.is_full:
            raise RegistryFull(f"Registry holds {len(registry.approved_tokens)} tokens")

        instruction = ix.add_approved_token_ix(registry.address, admin, mint, program_id=self.program_id)

        async def applied() -> bool:
            current = await self.fetch_token_registry()
            return current is not None and current.is_approved(mint)

        receipt = await self._execute("add_approved_token", [instruction], recheck=applied)

        audit_logger.log(event_type=AuditEventType.TOKEN_APPROVED, actor=str(admin), details=f"mint={mint}")
        return AdminResult(receipt.signature, registry.address, receipt.already_done)

    async def remove_approved_token(self, mint: Pubkey) -> AdminResult:
        admin, _ = await self._require_admin(action="remove_approved_token")
        mint = _pubkey(mint)
        registry = await self._require_registry()

        if not registry.is_approved(mint):
            raise TokenNotApproved(f"{mint} is not in the registry")

        instruction = ix.remove_approved_token_ix(registry.address, admin, mint, program_id=self.program_id)

        async def applied() -> bool:
            current = await self.fetch_token_registry()
            return current is not None and not current.is_approved(mint)

        receipt = await self._execute("remove_approved_token", [instruction], recheck=applied)

        audit_logger.log(
            event_type=AuditEventType.TOKEN_REMOVED,
            severity=AuditSeverity.WARNING,
            actor=str(admin),
            details=f"mint={mint}",
        )
        return AdminResult(receipt.signature, registry.address, receipt.already_done)

    async def migrate_token_registry(self, from_version: Optional[str] = None) -> List[AdminResult]:
        """Copy approved tokens from a legacy registry into the canonical one.

        Initializes the canonical registry if needed, then adds every legacy
        mint it does not already hold. The legacy account is left untouched.
        """
        admin, _ = await self._require_admin(action="migrate_token_registry")
        report = await self.check_registry_version()

        if from_version is None:
            if not report.legacy_versions:
                raise InvalidParameters("No legacy registry found to migrate from")
            from_version = report.legacy_versions[0]
        if from_version not in REGISTRY_SEEDS or from_version == self.registry_version:
            raise InvalidParameters(f"Cannot migrate from registry version '{from_version}'")

        legacy = await self.fetch_token_registry(from_version)
        if legacy is None:
            raise NotInitialized(f"Registry {from_version} does not exist")

        results = []
        if not report.canonical_exists:
            address = report.canonical_address
            instruction = ix.initialize_token_registry_ix(address, admin, program_id=self.program_id)
            receipt = await self._execute(
                "initialize_token_registry",
                [instruction],
                recheck=lambda: self._account_exists(address),
            )
            results.append(AdminResult(receipt.signature, address, receipt.already_done))

        canonical = await self._require_registry()
        for mint in legacy.approved_tokens:
            if canonical.is_approved(mint):
                continue
            results.append(await self.add_approved_token(mint))
            canonical.approved_tokens.append(mint)

        logger.info(
            f"[REGISTRY] ✅ Migrated {from_version} -> {self.registry_version} "
            f"({len(legacy.approved_tokens)} legacy tokens, {len(results)} transactions)"
        )
        audit_logger.log(
            event_type=AuditEventType.REGISTRY_MIGRATED,
            severity=AuditSeverity.WARNING,
            actor=str(admin),
            details=f"{from_version} -> {self.registry_version}, tokens={len(legacy.approved_tokens)}",
        )
        return results

    # ===== RECOVERY =====

    async def recover_room(
        self,
        room_id: str,
        host: Pubkey,
        room_address: Optional[Pubkey] = None,
        config: Optional[GlobalConfig] = None,
    ) -> RecoverRoomResult:
        """Refund an abandoned room: 90% back to players, 10% to the platform."""
        self._check_room_id(room_id)
        admin, config = await self._require_admin(config, "recover_room")
        room = await self.resolve_room(room_id, room_address, host=_pubkey(host))

        if room.ended:
            raise RoomAlreadyEnded(f"Room '{room_id}' has already ended")
        if room.total_collected <= 0:
            raise NoFundsToRecover(f"Room '{room_id}' has collected nothing")

        entries = await self.list_player_entries(room.address)
        if not entries:
            raise NoPlayersFound(f"No player entries found for '{room_id}'")

        mint = room.fee_token_mint
        platform_plan = await resolve_or_prepare_token_account(
            self.rpc, config.platform_wallet, mint, payer=admin, commitment=self.commitment
        )
        player_plans = [
            await resolve_or_prepare_token_account(self.rpc, entry.player, mint, payer=admin, commitment=self.commitment)
            for entry in entries
        ]
        refund_total, platform_fee = recovery_split(room.total_collected)

        room_vault = derive_room_vault_pda(room.address, self.program_id).address
        instruction = ix.recover_room_ix(
            room=room.address,
            room_vault=room_vault,
            global_config=self.global_config_address,
            platform_token_account=platform_plan.address,
            admin=admin,
            room_id=room_id,
            player_accounts=[(plan.owner, plan.address) for plan in player_plans],
            program_id=self.program_id,
        )
        instructions = prepend_create_instructions([platform_plan, *player_plans], [instruction])

        async def recovered() -> bool:
            return (await self.fetch_room(room.address)).ended

        logger.info(
            f"[RECOVER] Recovering '{room_id}': {len(entries)} players, "
            f"refund={refund_total} platform={platform_fee}"
        )
        receipt = await self._execute("recover_room", instructions, recheck=recovered)

        audit_logger.log(
            event_type=AuditEventType.ROOM_RECOVERED,
            severity=AuditSeverity.WARNING,
            actor=str(admin),
            details=f"room={room.address} players={len(entries)} refund={refund_total} fee={platform_fee}",
        )
        return RecoverRoomResult(
            signature=receipt.signature,
            room_address=room.address,
            players_refunded=len(entries),
            refund_total=refund_total,
            platform_fee=platform_fee,
            already_done=receipt.already_done,
        )
