"""Periodic fee-splitter sweep: claims protocol fees and reports agent balances."""

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from web3.exceptions import Web3Exception

from trinity.chain.abis import FEE_SPLITTER_ABI
from trinity.chain.client import ChainClient
from trinity.database import transaction
from trinity.exceptions import ChainError
from trinity.logging import get_logger
from trinity.models import Agent, AgentStatus, FeeDistribution, FeeStatus
from trinity.types.workers import FeeSweepResult

logger = get_logger("workers.fees")

SWEEP_INTERVAL_SECONDS = 3600.0
AGENT_SCAN_LIMIT = 100
SWEEP_RECIPIENT = "protocol-sweep"

SKIP_NO_FEE_SPLITTER = "no_fee_splitter_address"
SKIP_WALLET_NOT_INITIALIZED = "wallet_not_initialized"


def _wei_to_eth(wei: int) -> str:
    return f"{wei / 10**18:.6f}"


class FeeSweep:
    """
    One sweep over the fee splitter contract.

    Args:
        session_factory: Session factory for the orchestrator database
        chain: Chain client holding the protocol treasury key (optional)
        fee_splitter_address: Fee splitter contract (optional)
        scout_fund_address: Scout fund whose balance is reported (optional)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        chain: ChainClient | None,
        fee_splitter_address: str | None,
        scout_fund_address: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.chain = chain
        self.fee_splitter_address = fee_splitter_address
        self.scout_fund_address = scout_fund_address

    async def _claimable_eth(self, account: str) -> int:
        eth_amount, _usdc_amount = await self.chain.read_contract(
            self.fee_splitter_address, FEE_SPLITTER_ABI, "getClaimable", (account,)
        )
        return int(eth_amount)

    async def run(self) -> FeeSweepResult:
        """
        Run one sweep.

        Missing configuration ends the sweep early with ``skipped_reason``
        set. Failed reads and a failed protocol claim are logged and leave
        the corresponding counters untouched.

        Returns:
            FeeSweepResult with claims made and agent balances observed
        """
        if not self.fee_splitter_address:
            logger.warning("Fee splitter address not configured, skipping sweep")
            return FeeSweepResult(skipped_reason=SKIP_NO_FEE_SPLITTER)
        if self.chain is None or self.chain.deployer_address is None:
            logger.warning("Treasury wallet not initialized, skipping sweep")
            return FeeSweepResult(skipped_reason=SKIP_WALLET_NOT_INITIALIZED)

        result = FeeSweepResult()

        if self.scout_fund_address:
            try:
                scout_claimable = await self._claimable_eth(self.scout_fund_address)
                logger.info("Scout fund claimable: %s ETH", _wei_to_eth(scout_claimable))
            except ChainError as e:
                logger.warning("Reading scout fund claimable failed: %s", e)

        try:
            count = await self.chain.read_contract(
                self.fee_splitter_address, FEE_SPLITTER_ABI, "getDistributionCount"
            )
            logger.info("Fee splitter distribution count: %s", count)
        except ChainError as e:
            logger.warning("Reading distribution count failed: %s", e)

        try:
            protocol_claimable = await self._claimable_eth(self.chain.deployer_address)
            if protocol_claimable > 0:
                logger.info("Claiming %s ETH for the protocol treasury", _wei_to_eth(protocol_claimable))
                tx_hash = await self.chain.write_contract(
                    self.fee_splitter_address, FEE_SPLITTER_ABI, "claimETH"
                )
                await self.chain.wait_for_transaction(tx_hash)
                result.claims_made += 1
                result.total_distributed += protocol_claimable
        except (ChainError, Web3Exception, OSError) as e:
            logger.warning("Protocol treasury claim failed: %s", e)

        for agent_id, treasury in self._treasuries():
            try:
                claimable = await self._claimable_eth(treasury)
            except ChainError as e:
                logger.debug("Reading claimable for agent %s failed: %s", agent_id, e)
                continue
            if claimable > 0:
                result.distributions_made += 1
                result.total_distributed += claimable
                logger.info(
                    "Agent %s treasury %s has %s ETH growth capital pending",
                    agent_id, treasury, _wei_to_eth(claimable),
                )

        if result.distributions_made or result.claims_made:
            with transaction(self.session_factory) as session:
                session.add(
                    FeeDistribution(
                        total_amount=str(result.total_distributed),
                        currency="ETH",
                        agent_treasury_addr=SWEEP_RECIPIENT,
                        status=FeeStatus.CONFIRMED,
                        claims_made=result.claims_made,
                        distributions_made=result.distributions_made,
                    )
                )

        logger.info(
            "Fee sweep complete: %d distributions, %d claims, %s ETH",
            result.distributions_made, result.claims_made, _wei_to_eth(result.total_distributed),
        )
        return result

    def _treasuries(self) -> list[tuple[str, str]]:
        stmt = (
            select(Agent.id, Agent.on_chain_address)
            .where(Agent.status == AgentStatus.ACTIVE, Agent.on_chain_address.is_not(None))
            .order_by(Agent.created_at)
            .limit(AGENT_SCAN_LIMIT)
        )
        with self.session_factory() as session:
            return [(row.id, row.on_chain_address) for row in session.execute(stmt)]
