"""
Fake providers for testing.

Every fake satisfies the same capability protocol as the live client it
replaces, records each call as a :class:`MockCall` and returns a
deterministic default unless a response or error has been configured.
"""

import hashlib
import itertools
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from trinity.types.identity import IdentityMintResult, SocialAccountResult, WalletResult
from trinity.types.payments import PaymentRequirement

T = TypeVar("T")


@dataclass
class MockResponse:
    """
    Configuration for a mock response.

    ``error`` is raised on every call. ``errors`` is consumed one per call
    before falling back to ``error``/``data``, which makes "fail twice, then
    succeed" sequences easy to express (``None`` entries succeed).
    """

    data: Any = None
    error: Exception | None = None
    errors: list[Exception | None] = field(default_factory=list)
    call_count: int = 0


@dataclass
class MockCall:
    """Record of a method call."""

    method: str
    args: tuple[Any, ...]
    kwargs: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class _RecordingFake:
    def __init__(self) -> None:
        self._calls: list[MockCall] = []
        self._responses: dict[str, MockResponse] = {}

    def _configure(
        self,
        method: str,
        response: Any = None,
        error: Exception | None = None,
        errors: Sequence[Exception | None] = (),
    ) -> None:
        self._responses[method] = MockResponse(data=response, error=error, errors=list(errors))

    def _record_call(self, method: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        """Record a method call for verification."""
        self._calls.append(MockCall(method=method, args=args, kwargs=kwargs))

    def _get_response(self, method: str, default: T) -> T:
        """Get configured response or default."""
        if method in self._responses:
            resp = self._responses[method]
            resp.call_count += 1
            if resp.errors:
                queued = resp.errors.pop(0)
                if queued is not None:
                    raise queued
                return resp.data if resp.data is not None else default
            if resp.error:
                raise resp.error
            if resp.data is not None:
                return resp.data
        return default

    def was_called(self, method: str) -> bool:
        """
        Check if a method was called.

        Args:
            method: Method name (e.g., "provision_wallet", "write_contract")

        Returns:
            True if the method was called at least once
        """
        return any(call.method == method for call in self._calls)

    def call_count(self, method: str) -> int:
        return sum(1 for call in self._calls if call.method == method)

    def get_calls(self, method: str | None = None) -> list[MockCall]:
        """
        Get recorded calls, optionally filtered by method.

        Args:
            method: Optional method name to filter by

        Returns:
            List of MockCall objects
        """
        if method is None:
            return list(self._calls)
        return [call for call in self._calls if call.method == method]

    @property
    def total_calls(self) -> int:
        return len(self._calls)

    def reset(self) -> None:
        """Reset all recorded calls and configured responses."""
        self._calls.clear()
        self._responses.clear()


def _fake_address(seed: str) -> str:
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()[:40]


def _fake_tx_hash(seed: str) -> str:
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()


# ============================================================================
# Identity providers
# ============================================================================


class FakeWalletProvider(_RecordingFake):
    """Fake custodial wallet provider."""

    def configure_provision_wallet(
        self,
        response: WalletResult | None = None,
        error: Exception | None = None,
        errors: Sequence[Exception | None] = (),
    ) -> None:
        self._configure("provision_wallet", response, error, errors)

    async def provision_wallet(self, agent_id: str, agent_name: str) -> WalletResult:
        self._record_call("provision_wallet", (agent_id, agent_name), {})
        return self._get_response("provision_wallet", WalletResult(
            wallet_id=f"wallet-{agent_id}",
            wallet_address=_fake_address(agent_id),
            wallet_email=f"{agent_id}@agents.test",
        ))


class FakeSocialProvider(_RecordingFake):
    """Fake Farcaster provider: account creation and cast publishing."""

    def __init__(self, first_fid: int = 10_000) -> None:
        super().__init__()
        self._fids = itertools.count(first_fid)

    def configure_create_account(
        self,
        response: SocialAccountResult | None = None,
        error: Exception | None = None,
        errors: Sequence[Exception | None] = (),
    ) -> None:
        self._configure("create_account", response, error, errors)

    def configure_publish_cast(
        self,
        response: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self._configure("publish_cast", response, error)

    async def create_account(
        self,
        agent_id: str,
        username: str,
        display_name: str,
        bio: str,
        pfp_url: str | None = None,
    ) -> SocialAccountResult:
        self._record_call(
            "create_account",
            (agent_id, username),
            {"display_name": display_name, "bio": bio, "pfp_url": pfp_url},
        )
        return self._get_response("create_account", SocialAccountResult(
            fid=next(self._fids),
            signer_uuid=str(uuid.uuid4()),
            username=username,
            custody_address=_fake_address(f"custody:{agent_id}"),
        ))

    async def publish_cast(self, signer_uuid: str, text: str) -> str:
        self._record_call("publish_cast", (signer_uuid, text), {})
        return self._get_response("publish_cast", _fake_tx_hash(f"cast:{signer_uuid}:{text}")[:42])


class FakeIdentityMinter(_RecordingFake):
    """Fake ERC-8004 minter."""

    def __init__(self, first_token_id: int = 1) -> None:
        super().__init__()
        self._token_ids = itertools.count(first_token_id)

    def configure_mint(
        self,
        response: IdentityMintResult | None = None,
        error: Exception | None = None,
        errors: Sequence[Exception | None] = (),
    ) -> None:
        self._configure("mint", response, error, errors)

    async def mint(self, wallet_address: str, agent_uri: str) -> IdentityMintResult:
        self._record_call("mint", (wallet_address, agent_uri), {})
        token_id = next(self._token_ids)
        return self._get_response("mint", IdentityMintResult(
            token_id=token_id,
            agent_uri=agent_uri,
            mint_tx_hash=_fake_tx_hash(f"mint:{token_id}"),
        ))


class FakeImageGenerator(_RecordingFake):
    """Fake image generator returning predictable URLs."""

    def configure_generate_image(
        self,
        response: str | None = None,
        error: Exception | None = None,
        errors: Sequence[Exception | None] = (),
    ) -> None:
        self._configure("generate_image", response, error, errors)

    async def generate_image(self, prompt: str, width: int, height: int) -> str:
        self._record_call("generate_image", (prompt, width, height), {})
        n = self.call_count("generate_image")
        return self._get_response("generate_image", f"https://images.test/{width}x{height}/{n}.png")


# ============================================================================
# Payments
# ============================================================================


class FakeFacilitator(_RecordingFake):
    """Fake x402 facilitator; accepts every payment unless configured."""

    def configure_verify(
        self,
        response: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._configure("verify", response, error)

    async def verify(self, payment_header: str, requirement: PaymentRequirement) -> dict[str, Any]:
        self._record_call("verify", (payment_header, requirement), {})
        return self._get_response("verify", {"isValid": True})


# ============================================================================
# Chain
# ============================================================================


class FakeChainClient(_RecordingFake):
    """
    Fake :class:`~trinity.chain.ChainClient`.

    Reads are answered per function name, optionally narrowed to specific
    arguments with ``configure_read(..., args=(...))``. Writes return
    sequential transaction hashes; receipts succeed unless configured.
    """

    def __init__(self, deployer_address: str | None = "0x" + "ab" * 20) -> None:
        super().__init__()
        self.deployer_address = deployer_address
        self._reads: dict[tuple[str, tuple[Any, ...] | None], MockResponse] = {}
        self._events: dict[str, list[dict[str, Any]]] = {}
        self._tx_counter = itertools.count(1)

    def configure_read(
        self,
        function: str,
        response: Any = None,
        error: Exception | None = None,
        args: Sequence[Any] | None = None,
    ) -> None:
        key = (function, tuple(args) if args is not None else None)
        self._reads[key] = MockResponse(data=response, error=error)

    def configure_events(self, event: str, events: list[dict[str, Any]]) -> None:
        self._events[event] = list(events)

    def configure_write(self, function: str, error: Exception | None = None) -> None:
        self._configure(f"write:{function}", None, error)

    def configure_wait(self, error: Exception | None = None) -> None:
        self._configure("wait_for_transaction", None, error)

    async def read_contract(
        self, address: str, abi: Any, function: str, args: Sequence[Any] = ()
    ) -> Any:
        self._record_call("read_contract", (address, function, tuple(args)), {})
        resp = self._reads.get((function, tuple(args))) or self._reads.get((function, None))
        if resp is None:
            return 0
        resp.call_count += 1
        if resp.error:
            raise resp.error
        return resp.data

    async def write_contract(
        self,
        address: str,
        abi: Any,
        function: str,
        args: Sequence[Any] = (),
        value: int = 0,
    ) -> str:
        self._record_call("write_contract", (address, function, tuple(args)), {"value": value})
        tx_hash = "0x" + f"{next(self._tx_counter):064x}"
        return self._get_response(f"write:{function}", tx_hash)

    async def wait_for_transaction(self, tx_hash: str, timeout: float | None = None) -> dict[str, Any]:
        self._record_call("wait_for_transaction", (tx_hash,), {"timeout": timeout})
        return self._get_response("wait_for_transaction", {"transactionHash": tx_hash, "status": 1, "logs": []})

    def decode_events(self, address: str, abi: Any, event: str, receipt: dict[str, Any]) -> list[dict[str, Any]]:
        self._record_call("decode_events", (address, event), {})
        return list(self._events.get(event, []))

    def writes(self, function: str | None = None) -> list[MockCall]:
        """Recorded ``write_contract`` calls, optionally for one function."""
        calls = self.get_calls("write_contract")
        if function is None:
            return calls
        return [call for call in calls if call.args[1] == function]

    def reset(self) -> None:
        super().reset()
        self._reads.clear()
        self._events.clear()
