#!/usr/bin/env python3
"""
Trinity Orchestrator - Marketplace Workflow Example

Runs the API in-process in demo mode and walks one agent-to-agent job
through its lifecycle:
1. Deploy the seller's identity (demo wallet, social account, token)
2. Discover the seller's offering
3. Purchase it as the buyer
4. Accept, deliver and complete it as the seller
5. Rate it as the buyer
"""

import asyncio

import httpx

from trinity.api.app import create_app
from trinity.clients import ServiceClient
from trinity.config import Settings
from trinity.database import create_all, create_engine_from_url, make_session_factory
from trinity.runtime import build_runtime
from trinity.testing import (
    BUYER_CREATOR_ADDRESS,
    CREATOR_ADDRESS,
    create_active_agent,
    create_test_agent,
    create_test_offering,
)
from trinity.transport import AsyncHTTPTransport

BASE_URL = "http://trinity.local/api"


def transport_for(app, wallet: str) -> AsyncHTTPTransport:
    """A transport that calls ``app`` directly, authenticated as ``wallet``."""
    return AsyncHTTPTransport(
        BASE_URL,
        headers={"x-wallet-address": wallet},
        client=httpx.AsyncClient(base_url=BASE_URL, transport=httpx.ASGITransport(app=app)),
    )


async def main() -> None:
    """Run the marketplace workflow example."""
    print("=== Trinity Orchestrator Example ===\n")

    engine = create_engine_from_url("sqlite://")
    create_all(engine)
    session_factory = make_session_factory(engine)
    app = create_app(build_runtime(Settings(demo_mode=True, database_url="sqlite://"), session_factory=session_factory))

    seller = create_test_agent(session_factory, name="Research Agent")
    buyer = create_active_agent(session_factory, name="Trader Agent", creator_address=BUYER_CREATOR_ADDRESS)
    create_test_offering(session_factory, seller, slug="l2-fee-report", price_usdc=0)

    async with transport_for(app, CREATOR_ADDRESS) as seller_http, transport_for(
        app, BUYER_CREATOR_ADDRESS
    ) as buyer_http:
        # Step 1: Deploy the seller
        print("1. Deploying seller identity...")
        deployed = (await seller_http.request("POST", f"/agents/{seller.id}/deploy"))["data"]
        print(f"   Trinity status: {deployed['trinityStatus']}")
        print(f"   Errors: {deployed['errors'] or 'none'}")

        # Step 2: Discover
        print("\n2. Discovering research services...")
        buyer_client = ServiceClient(buyer_http)
        offerings = await buyer_client.discover(category="research")
        for offering in offerings:
            print(f"   - {offering.slug}: {offering.name} ({offering.price_usdc} micro-USDC)")
        offering = await buyer_client.get_service("l2-fee-report")

        # Step 3: Purchase
        print("\n3. Purchasing...")
        job = await buyer_client.purchase(
            offering.offering_id, buyer.id, {"topic": "l2 fees"}, ttl_minutes=30
        )
        print(f"   Job ID: {job.job_id}")
        print(f"   Status: {job.status}")

        # Step 4: Seller works the job
        print("\n4. Seller working the job...")
        for body in (
            {"status": "ACCEPTED"},
            {"status": "DELIVERING"},
            {"status": "COMPLETED", "deliverables": {"report": "ipfs://l2-fee-report"}},
        ):
            updated = (await seller_http.request("PATCH", f"/services/jobs/{job.job_id}", body=body))["data"]
            print(f"   -> {updated['status']}")

        job = await buyer_client.wait_for_completion(job.job_id, poll_interval=0.1, timeout=5)
        print(f"   Deliverables: {job.deliverables}")

        # Step 5: Rate
        print("\n5. Rating the job...")
        job = await buyer_client.rate_job(job.job_id, 5, "Clear and on time")
        print(f"   Rating: {job.buyer_rating}")

    engine.dispose()
    print("\n=== Example Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
