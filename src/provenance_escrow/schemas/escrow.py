"""Pydantic schemas for the product escrow API.

Request bodies carry the caller's address explicitly; the service has no
key custody, so identity is whatever the caller field says. Amounts are
integers of wei.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from provenance_escrow.domain.commitments import ZERO_BYTES32

ADDRESS_FIELD = {
    "min_length": 42,
    "max_length": 42,
    "examples": ["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
}

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CallerRequest(BaseModel):
    """Body for operations that only need the caller's address."""

    caller: str = Field(..., description="Address performing the operation", **ADDRESS_FIELD)


class CreateProductRequest(BaseModel):
    """Request body for listing a new product."""

    seller: str = Field(..., description="Seller address, becomes the escrow owner", **ADDRESS_FIELD)
    name: str = Field(..., min_length=1, max_length=200, examples=["Cold-pressed olive oil"])
    price_commitment: str = Field(
        ...,
        min_length=64,
        max_length=66,
        description="32-byte price commitment, hex with optional 0x prefix",
    )
    price: int | None = Field(
        default=None,
        gt=0,
        description="Optional listing price in wei; purchases must then pay exactly this",
    )


class CreateDeterministicProductRequest(CreateProductRequest):
    """Request body for listing at a salt-derived address."""

    salt: str = Field(..., min_length=64, max_length=66, description="32-byte salt, hex")


class SetPublicPriceRequest(CallerRequest):
    price_wei: int = Field(..., gt=0)


class SetPriceCommitmentRequest(CallerRequest):
    commitment: str = Field(..., min_length=64, max_length=66)
    price_wei: int | None = Field(default=None, gt=0)


class PurchaseRequest(CallerRequest):
    value: int = Field(..., gt=0, description="Wei attached to the purchase")


class ConfirmOrderRequest(CallerRequest):
    vc_cid: str = Field(..., min_length=1, description="Address of the Purchase-stage VC")
    purchase_tx_commitment: str = Field(
        default=ZERO_BYTES32,
        min_length=64,
        max_length=66,
        description="Commitment to the purchase transaction hash, zero if none",
    )


class CreateTransporterRequest(CallerRequest):
    fee: int = Field(..., ge=0, description="Delivery fee asked, in wei")


class SecurityDepositRequest(CallerRequest):
    value: int = Field(..., gt=0)


class SetTransporterRequest(CallerRequest):
    transporter: str = Field(..., **ADDRESS_FIELD)
    value: int = Field(..., ge=0, description="Delivery fee paid into escrow, in wei")


class RevealDeliveryRequest(CallerRequest):
    value: int = Field(..., ge=0, description="Revealed price")
    blinding: str = Field(..., min_length=64, max_length=66)
    vc_cid: str = Field(..., min_length=1)


class UpdateVcRequest(CallerRequest):
    vc_cid: str = Field(..., min_length=1)


class FundRequest(BaseModel):
    """Development faucet request."""

    account: str = Field(..., **ADDRESS_FIELD)
    amount: int = Field(..., gt=0, description="Wei to mint into the account")


class UpdateVcAfterDeliveryRequest(UpdateVcRequest):
    delivery_tx_commitment: str = Field(default=ZERO_BYTES32, min_length=64, max_length=66)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class TransporterBidResponse(BaseModel):
    address: str
    fee: int
    deposit: int


class EscrowSnapshot(BaseModel):
    """Persisted view of one product escrow."""

    model_config = ConfigDict(from_attributes=True)

    product_id: int
    address: str
    name: str
    owner: str
    phase: str
    listing_commitment: str
    price_commitment: str
    commitment_frozen: bool
    public_price: int | None
    purchased: bool
    buyer: str | None
    purchase_amount: int
    transporter: str | None
    delivery_fee: int
    bids: dict[str, TransporterBidResponse]
    vc_cids: dict[str, str | None]
    purchase_tx_commitment: str | None
    delivery_tx_commitment: str | None
    balance: int
    deadline: float | None


class EscrowEventResponse(BaseModel):
    """Response schema for one escrow event."""

    event_type: str
    product_id: int
    actor: str | None
    timestamp: float
    data: dict


class ProductListResponse(BaseModel):
    total: int
    products: list[EscrowSnapshot]


class RefundResponse(BaseModel):
    product_id: int
    refunded: int
    phase: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    prover: str = "unknown"
    redis: str = "unknown"


class WalletResponse(BaseModel):
    account: str
    balance: int


class VcStoredResponse(BaseModel):
    """Content address of a stored VC document."""

    cid: str
