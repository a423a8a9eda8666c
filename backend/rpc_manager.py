"""
RPC Manager with automatic failover and circuit breaker pattern.

Keeps room operations available when the primary RPC is down by switching
to backup endpoints. Only transport failures fail over: an error response
from a healthy node is a real answer and is passed straight back.
"""
import logging
import os
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from solana.rpc.async_api import AsyncClient

from chain_config import PUBLIC_RPC_URLS, SOLANA_GENESIS_HASHES, SOLANA_NETWORK
from room_program.errors import TRANSPORT_ERRORS, RpcUnavailable
from security.audit import AuditEventType, AuditSeverity, audit_logger

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Too many failures, not trying
    HALF_OPEN = "half_open"  # Testing if service recovered


class RPCEndpoint:
    """RPC endpoint with circuit breaker."""

    def __init__(
        self,
        url: str,
        name: str,
        failure_threshold: int = 3,
        success_threshold: int = 2,
        timeout_seconds: int = 60,
    ):
        self.url = url
        self.name = name
        self.failure_count = 0
        self.success_count = 0
        self.total_requests = 0
        self.last_failure_time = None
        self.last_success_time = None
        self.circuit_state = CircuitState.CLOSED
        self._client: Optional[AsyncClient] = None

        # Circuit breaker thresholds
        self.failure_threshold = failure_threshold  # Open circuit after N failures
        self.success_threshold = success_threshold  # Close circuit after N successes in half-open
        self.timeout_seconds = timeout_seconds      # Try again after this long

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.url)
        return self._client

    def record_success(self):
        """Record successful request."""
        self.success_count += 1
        self.total_requests += 1
        self.last_success_time = datetime.utcnow()

        # Reset failure count on success
        self.failure_count = 0

        if self.circuit_state == CircuitState.HALF_OPEN:
            if self.success_count >= self.success_threshold:
                logger.info(f"🟢 Circuit CLOSED for {self.name} after {self.success_count} successes")
                self.circuit_state = CircuitState.CLOSED
                self.success_count = 0

    def record_failure(self):
        """Record failed request."""
        self.failure_count += 1
        self.total_requests += 1
        self.last_failure_time = datetime.utcnow()

        if self.failure_count >= self.failure_threshold:
            if self.circuit_state != CircuitState.OPEN:
                logger.error(
                    f"🔴 Circuit OPEN for {self.name} after {self.failure_count} failures. "
                    f"Will retry in {self.timeout_seconds}s"
                )
                self.circuit_state = CircuitState.OPEN

    def should_attempt(self) -> bool:
        """Check if we should attempt request to this endpoint."""
        if self.circuit_state in (CircuitState.CLOSED, CircuitState.HALF_OPEN):
            return True

        # Open: allow one probe once the timeout has expired
        if self.last_failure_time:
            timeout_expiry = self.last_failure_time + timedelta(seconds=self.timeout_seconds)
            if datetime.utcnow() >= timeout_expiry:
                logger.info(f"🟡 Circuit HALF-OPEN for {self.name} - testing recovery")
                self.circuit_state = CircuitState.HALF_OPEN
                self.success_count = 0
                return True

        return False

    def get_status(self) -> dict:
        """Get endpoint status."""
        return {
            "name": self.name,
            "url": self.url[:50] + "..." if len(self.url) > 50 else self.url,
            "circuit_state": self.circuit_state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "total_requests": self.total_requests,
            "last_success": self.last_success_time.isoformat() if self.last_success_time else None,
            "last_failure": self.last_failure_time.isoformat() if self.last_failure_time else None,
        }

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None


class RPCManager:
    """Manage multiple RPC endpoints with automatic failover."""

    def __init__(self, endpoints: Sequence[RPCEndpoint]):
        self.endpoints: List[RPCEndpoint] = list(endpoints)
        if not self.endpoints:
            raise ValueError("No RPC endpoints configured! Set RPC_URL environment variable.")

        logger.info(f"RPC Manager initialized with {len(self.endpoints)} endpoints:")
        for endpoint in self.endpoints:
            logger.info(f"  - {endpoint.name}: {endpoint.url[:50]}...")

    @classmethod
    def from_env(cls, network: Optional[str] = None) -> "RPCManager":
        """Primary and backup URLs from the environment, then the public cluster endpoint."""
        network = network or SOLANA_NETWORK
        endpoints = []

        primary_rpc = os.getenv("RPC_URL")
        backup1_rpc = os.getenv("BACKUP_RPC_URL_1")
        backup2_rpc = os.getenv("BACKUP_RPC_URL_2")

        if primary_rpc:
            endpoints.append(RPCEndpoint(primary_rpc, "Primary"))
        if backup1_rpc:
            endpoints.append(RPCEndpoint(backup1_rpc, "Backup 1"))
        if backup2_rpc:
            endpoints.append(RPCEndpoint(backup2_rpc, "Backup 2"))

        # Public fallback (rate limited but always available)
        public_url = PUBLIC_RPC_URLS.get(network, PUBLIC_RPC_URLS["devnet"])
        if public_url not in (e.url for e in endpoints):
            endpoints.append(RPCEndpoint(public_url, f"Public Fallback ({network})"))

        return cls(endpoints)

    async def call_with_failover(
        self,
        method: Callable[..., Awaitable[Any]],
        *args,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> Any:
        """Call an RPC method with automatic failover.

        Args:
            method: Async function taking an AsyncClient as its first argument
            *args: Arguments to pass to method (after the client)
            max_retries: Maximum number of endpoints to try (default: all)
            **kwargs: Keyword arguments to pass to method

        Returns:
            Result from method call

        Raises:
            RpcUnavailable: every endpoint failed at the transport level
            RPCException: a node answered with an error (not failed over)
        """
        if max_retries is None:
            max_retries = len(self.endpoints)

        last_error = None
        attempts = 0

        for endpoint in self.endpoints:
            if attempts >= max_retries:
                break

            if not endpoint.should_attempt():
                logger.debug(f"Skipping {endpoint.name} - circuit breaker open")
                continue

            attempts += 1

            try:
                logger.debug(f"Attempting RPC call via {endpoint.name}...")
                result = await method(endpoint.client, *args, **kwargs)
            except TRANSPORT_ERRORS as e:
                last_error = e
                endpoint.record_failure()
                logger.warning(f"❌ RPC call failed via {endpoint.name}: {str(e)[:100]}")
                continue

            endpoint.record_success()
            logger.debug(f"✅ RPC call succeeded via {endpoint.name}")
            return result

        logger.error(
            f"🚨 ALL RPC ENDPOINTS FAILED after {attempts} attempts! "
            f"Last error: {last_error}"
        )
        audit_logger.log(
            event_type=AuditEventType.RPC_FAILURE,
            severity=AuditSeverity.CRITICAL,
            details=f"ALL RPC ENDPOINTS FAILED: {last_error}",
        )
        raise RpcUnavailable(f"All RPC endpoints failed. Last error: {last_error}")

    def get_status(self) -> dict:
        """Get status of all RPC endpoints."""
        return {
            "total_endpoints": len(self.endpoints),
            "endpoints": [endpoint.get_status() for endpoint in self.endpoints],
            "healthy_endpoints": sum(
                1 for e in self.endpoints if e.circuit_state == CircuitState.CLOSED
            ),
            "failed_endpoints": sum(
                1 for e in self.endpoints if e.circuit_state == CircuitState.OPEN
            ),
        }

    def reset_all_circuits(self):
        """Reset all circuit breakers (for testing/admin)."""
        for endpoint in self.endpoints:
            endpoint.circuit_state = CircuitState.CLOSED
            endpoint.failure_count = 0
            endpoint.success_count = 0

        logger.info("All circuit breakers reset")

    async def close(self):
        for endpoint in self.endpoints:
            await endpoint.close()


class FailoverClient:
    """The subset of AsyncClient the room program uses, routed through an RPCManager."""

    def __init__(self, manager: RPCManager):
        self.manager = manager

    async def get_account_info(self, pubkey, commitment=None, encoding="base64"):
        return await self.manager.call_with_failover(
            lambda c: c.get_account_info(pubkey, commitment=commitment, encoding=encoding)
        )

    async def get_program_accounts(self, pubkey, commitment=None, encoding=None, filters=None):
        return await self.manager.call_with_failover(
            lambda c: c.get_program_accounts(pubkey, commitment=commitment, encoding=encoding, filters=filters)
        )

    async def get_latest_blockhash(self, commitment=None):
        return await self.manager.call_with_failover(lambda c: c.get_latest_blockhash(commitment))

    async def simulate_transaction(self, txn, sig_verify=False, commitment=None):
        return await self.manager.call_with_failover(
            lambda c: c.simulate_transaction(txn, sig_verify=sig_verify, commitment=commitment)
        )

    async def send_raw_transaction(self, txn: bytes, opts=None):
        # Same signed bytes on every endpoint, so a failover resend is the same transaction
        return await self.manager.call_with_failover(lambda c: c.send_raw_transaction(txn, opts=opts))

    async def get_signature_statuses(self, signatures, search_transaction_history=False):
        return await self.manager.call_with_failover(
            lambda c: c.get_signature_statuses(signatures, search_transaction_history)
        )

    async def get_genesis_hash(self):
        return await self.manager.call_with_failover(lambda c: c.get_genesis_hash())

    async def get_balance(self, pubkey, commitment=None):
        return await self.manager.call_with_failover(lambda c: c.get_balance(pubkey, commitment))

    async def close(self):
        await self.manager.close()


async def check_rpc_health(manager: RPCManager) -> dict:
    """Check health of all RPC endpoints.

    Returns:
        Dict with health status, including which cluster each endpoint serves
    """
    results = []

    for endpoint in manager.endpoints:
        start_time = datetime.utcnow()
        try:
            resp = await endpoint.client.get_genesis_hash()
        except TRANSPORT_ERRORS as e:
            results.append({
                "endpoint": endpoint.name,
                "status": "unhealthy",
                "error": str(e)[:100],
                "circuit_state": endpoint.circuit_state.value,
            })
            continue

        latency_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        genesis = str(resp.value)
        results.append({
            "endpoint": endpoint.name,
            "status": "healthy",
            "latency_ms": latency_ms,
            "cluster": SOLANA_GENESIS_HASHES.get(genesis, "unknown"),
            "circuit_state": endpoint.circuit_state.value,
        })

    return {
        "timestamp": datetime.utcnow().isoformat(),
        "total_endpoints": len(manager.endpoints),
        "healthy": sum(1 for r in results if r["status"] == "healthy"),
        "unhealthy": sum(1 for r in results if r["status"] == "unhealthy"),
        "results": results,
    }
