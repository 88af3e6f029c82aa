"""
x402 payment gate for paid marketplace endpoints.

A request pays by carrying an ``X-PAYMENT`` header: the JSON produced by
:meth:`trinity.types.SignedPayment.to_dict`. The gate checks the amount and
payee locally and then asks the facilitator to verify the signature.

Reverse proxies that verify payments themselves may forward
``X-PAYMENT-VERIFIED: true`` with ``X-PAYMENT-PAYER`` and
``X-PAYMENT-AMOUNT``; those headers are honoured only when
``PaymentConfig.trust_upstream_verification`` is set, since any client can
send them.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from trinity.clients.facilitator import FacilitatorClient
from trinity.config import PaymentConfig
from trinity.exceptions import BadRequestError, PaymentRequiredError
from trinity.logging import get_logger, truncate_hash
from trinity.types.payments import PaymentRequirement, PaymentVerification

logger = get_logger("payments")

PAYMENT_HEADER = "x-payment"
VERIFIED_HEADER = "x-payment-verified"
PAYER_HEADER = "x-payment-payer"
AMOUNT_HEADER = "x-payment-amount"
REQUIREMENTS_HEADER = "X-Payment-Requirements"

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_PAYLOAD_FIELDS = ("from", "to", "value", "validAfter", "validBefore", "nonce")


def build_payment_requirement(amount: int, description: str, config: PaymentConfig) -> PaymentRequirement:
    """
    Describe the payment a client must make.

    Args:
        amount: Required amount in USDC micro-units
        description: What the payment buys
        config: Payment settings (network, asset, payee, facilitator)
    """
    return PaymentRequirement(
        max_amount_required=amount,
        pay_to=config.pay_to,
        asset=config.asset,
        network=config.network,
        facilitator=config.facilitator_url,
        description=description,
    )


def parse_payment_header(raw: str) -> dict[str, Any]:
    """
    Parse and shape-check an ``X-PAYMENT`` header.

    Raises:
        BadRequestError: If the header is not valid JSON or misses fields
    """
    try:
        data = json.loads(raw)
    except ValueError:
        raise BadRequestError("INVALID_PAYMENT", "Malformed X-PAYMENT header: invalid JSON") from None

    if not isinstance(data, dict) or not data.get("signature"):
        raise BadRequestError("INVALID_PAYMENT", "X-PAYMENT header has no signature")
    payload = data.get("payload")
    if not isinstance(payload, dict):
        raise BadRequestError("INVALID_PAYMENT", "X-PAYMENT header has no payload")

    missing = [name for name in _PAYLOAD_FIELDS if name not in payload]
    if missing:
        raise BadRequestError("INVALID_PAYMENT", f"X-PAYMENT payload missing: {', '.join(missing)}")
    for name in ("from", "to"):
        if not _ADDRESS_RE.match(str(payload[name])):
            raise BadRequestError("INVALID_PAYMENT", f"X-PAYMENT payload.{name} is not an address")
    try:
        int(payload["value"])
    except (TypeError, ValueError):
        raise BadRequestError("INVALID_PAYMENT", "X-PAYMENT payload.value is not an integer") from None
    return data


class PaymentGate:
    """
    Verifies x402 payments for one deployment.

    Args:
        config: Payment settings
        facilitator: Client for the facilitator's ``/verify`` endpoint
    """

    def __init__(self, config: PaymentConfig, facilitator: FacilitatorClient) -> None:
        self.config = config
        self.facilitator = facilitator

    def requirement(self, amount: int, description: str = "") -> PaymentRequirement:
        return build_payment_requirement(amount, description, self.config)

    async def check(
        self,
        headers: Mapping[str, str],
        required_amount: int,
        description: str = "",
    ) -> PaymentVerification:
        """
        Verify that a request paid at least ``required_amount``.

        Args:
            headers: Request headers
            required_amount: Price in USDC micro-units
            description: Shown to the client in the payment requirement

        Returns:
            PaymentVerification for the accepted payment

        Raises:
            PaymentRequiredError: If no valid payment covers the amount
            BadRequestError: If the payment header is malformed
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        requirement = self.requirement(required_amount, description)

        if self.config.trust_upstream_verification and lowered.get(VERIFIED_HEADER, "").lower() == "true":
            return self._check_upstream(lowered, requirement)

        raw = lowered.get(PAYMENT_HEADER)
        if not raw:
            raise PaymentRequiredError("Payment required", requirement)

        data = parse_payment_header(raw)
        payload = data["payload"]
        paid = int(payload["value"])
        if paid < required_amount:
            raise PaymentRequiredError(
                f"Insufficient payment: paid {paid} but {required_amount} required (USDC micro-units)",
                requirement,
            )
        if self.config.revenue_address and payload["to"].lower() != self.config.revenue_address.lower():
            raise PaymentRequiredError(f"Payment must be made to {self.config.pay_to}", requirement)

        verdict = await self.facilitator.verify(raw, requirement)
        if not (verdict.get("isValid") or verdict.get("valid")):
            reason = verdict.get("invalidReason") or verdict.get("error") or "unknown reason"
            logger.warning("Facilitator rejected payment from %s: %s", payload["from"], reason)
            raise PaymentRequiredError(f"Payment verification failed: {reason}", requirement)

        tx_hash = verdict.get("txHash")
        logger.info(
            "Payment of %d from %s verified%s",
            paid, payload["from"], f" ({truncate_hash(tx_hash)})" if tx_hash else "",
        )
        return PaymentVerification(
            payer=verdict.get("payer") or payload["from"],
            amount=paid,
            verified_by="facilitator",
            tx_hash=tx_hash,
        )

    def _check_upstream(self, headers: dict[str, str], requirement: PaymentRequirement) -> PaymentVerification:
        try:
            amount = int(headers.get(AMOUNT_HEADER, ""))
        except ValueError:
            raise PaymentRequiredError("Upstream payment amount missing", requirement) from None
        if amount < requirement.max_amount_required:
            raise PaymentRequiredError(
                f"Insufficient payment: paid {amount} but {requirement.max_amount_required} required",
                requirement,
            )
        payer = headers.get(PAYER_HEADER)
        logger.info("Payment of %d from %s accepted on upstream verification", amount, payer)
        return PaymentVerification(payer=payer, amount=amount, verified_by="upstream")
