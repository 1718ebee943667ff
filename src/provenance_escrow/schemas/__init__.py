"""Pydantic API schemas."""

from provenance_escrow.schemas.escrow import (
    CallerRequest,
    ConfirmOrderRequest,
    CreateDeterministicProductRequest,
    CreateProductRequest,
    CreateTransporterRequest,
    EscrowEventResponse,
    EscrowSnapshot,
    FundRequest,
    HealthResponse,
    ProductListResponse,
    PurchaseRequest,
    RefundResponse,
    RevealDeliveryRequest,
    SecurityDepositRequest,
    SetPriceCommitmentRequest,
    SetPublicPriceRequest,
    SetTransporterRequest,
    UpdateVcAfterDeliveryRequest,
    UpdateVcRequest,
    VcStoredResponse,
    WalletResponse,
)
from provenance_escrow.schemas.zkp import (
    BindingTagRequest,
    BindingTagResponse,
    GenerateProofRequest,
    ProofResponse,
    VerifyProofRequest,
    VerifyProofResponse,
)

__all__ = [
    "BindingTagRequest",
    "BindingTagResponse",
    "CallerRequest",
    "ConfirmOrderRequest",
    "CreateDeterministicProductRequest",
    "CreateProductRequest",
    "CreateTransporterRequest",
    "EscrowEventResponse",
    "EscrowSnapshot",
    "FundRequest",
    "GenerateProofRequest",
    "HealthResponse",
    "ProductListResponse",
    "ProofResponse",
    "PurchaseRequest",
    "RefundResponse",
    "RevealDeliveryRequest",
    "SecurityDepositRequest",
    "SetPriceCommitmentRequest",
    "SetPublicPriceRequest",
    "SetTransporterRequest",
    "UpdateVcAfterDeliveryRequest",
    "UpdateVcRequest",
    "VcStoredResponse",
    "VerifyProofRequest",
    "VerifyProofResponse",
    "WalletResponse",
]
