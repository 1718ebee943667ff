"""Pydantic schemas for binding tags and value commitment proofs."""

from __future__ import annotations

from pydantic import BaseModel, Field

from provenance_escrow.domain.proof_protocol import ZKProof


class BindingTagRequest(BaseModel):
    """Context a binding tag is derived from. Omitted chain id uses the configured chain."""

    chain_id: int | None = Field(default=None, gt=0)
    escrow_address: str = Field(..., min_length=40, max_length=42)
    product_id: int = Field(..., ge=0)
    stage: int = Field(..., ge=0, le=2, description="0 = listing, 1 = purchase, 2 = delivery")
    schema_version: str | None = Field(default=None, min_length=1)
    previous_vc_cid: str | None = None


class BindingTagResponse(BaseModel):
    binding_tag: str = Field(..., description="64 hex chars, no prefix")
    protocol_version: str


class VerifyProofRequest(BaseModel):
    commitment: str = Field(..., min_length=1)
    proof: str = Field(..., min_length=1)
    binding_tag: str | None = None


class VerifyProofResponse(BaseModel):
    verified: bool


class GenerateProofRequest(BaseModel):
    value: int = Field(..., ge=0, lt=2**64)
    blinding: str = Field(..., min_length=64, max_length=66)
    binding_tag: str | None = None


class ProofResponse(BaseModel):
    commitment: str
    proof: str
    binding_tag: str | None
    verified: bool

    @classmethod
    def from_record(cls, record: ZKProof) -> ProofResponse:
        return cls(**record.to_dict())
