"""Transaction intent schemas.

Translate a payment request into the body the coordination service turns
into a :class:`~tss_wallet.types.TxRequest`.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Recipient(BaseModel):
    """A single payment output."""

    address: str = Field(min_length=1, description="Destination address")
    amount: str = Field(pattern=r"^\d+$", description="Amount in base units (e.g. lamports)")


class Memo(BaseModel):
    """Optional memo attached to the transaction."""

    value: str = Field(description="Memo content")
    type: str = Field(default="text", description="Memo type")


class PrebuildParams(BaseModel):
    """Input schema for building a tx request from an intent."""

    model_config = ConfigDict(populate_by_name=True)

    recipients: list[Recipient] = Field(min_length=1, description="Payment outputs")
    memo: Memo | None = Field(default=None, description="Optional memo")
    intent_type: str = Field(
        default="payment",
        alias="intentType",
        description="Intent type understood by the service (e.g. payment)",
    )


def build_intent(params: PrebuildParams, coin: str) -> dict[str, Any]:
    """Build the tx request creation body for ``params``."""
    intent: dict[str, Any] = {
        "intentType": params.intent_type,
        "recipients": [
            {
                "address": {"address": recipient.address},
                "amount": {"value": recipient.amount, "asset": coin},
            }
            for recipient in params.recipients
        ],
    }
    if params.memo is not None:
        intent["memo"] = params.memo.value
    return {"intent": intent}
