"""x402 payment data models."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PaymentRequirement:
    """What a client must pay before a paid endpoint will serve it."""

    max_amount_required: int  # USDC micro-units
    pay_to: str
    asset: str
    network: str
    facilitator: str
    description: str
    scheme: str = "x402"

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheme": self.scheme,
            "network": self.network,
            "maxAmountRequired": str(self.max_amount_required),
            "asset": self.asset,
            "payTo": self.pay_to,
            "facilitator": self.facilitator,
            "description": self.description,
        }


@dataclass(frozen=True)
class TransferAuthorization:
    """The EIP-3009 ``TransferWithAuthorization`` message body."""

    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: str  # 0x-prefixed bytes32

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_address,
            "to": self.to,
            "value": str(self.value),
            "validAfter": str(self.valid_after),
            "validBefore": str(self.valid_before),
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class SignedPayment:
    """A signed transfer authorization plus ready-to-send calldata."""

    signature: str
    authorization: TransferAuthorization
    calldata: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "payload": self.authorization.to_dict(),
            "calldata": self.calldata,
        }


@dataclass(frozen=True)
class PaymentVerification:
    """A payment accepted by the gate."""

    payer: str | None
    amount: int
    verified_by: str  # "facilitator" or "upstream"
    tx_hash: str | None = None
