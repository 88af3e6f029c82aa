"""x402 facilitator client."""

from typing import TYPE_CHECKING, Any

from trinity.types.payments import PaymentRequirement

if TYPE_CHECKING:
    from trinity.transport import AsyncHTTPTransport

VERIFY_TIMEOUT_SECONDS = 15.0


class FacilitatorClient:
    """Asks an x402 facilitator whether a payment header settles a requirement."""

    def __init__(self, transport: "AsyncHTTPTransport") -> None:
        self.transport = transport

    async def verify(self, payment_header: str, requirement: PaymentRequirement) -> dict[str, Any]:
        """
        Verify a client's ``X-PAYMENT`` header.

        Returns:
            The facilitator's verdict, e.g. ``{"isValid": True, "payer": "0x..."}``
        """
        return await self.transport.request(
            "POST",
            "/verify",
            body={
                "x402Version": 1,
                "paymentHeader": payment_header,
                "paymentRequirements": requirement.to_dict(),
            },
            timeout=VERIFY_TIMEOUT_SECONDS,
        )
