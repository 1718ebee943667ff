"""Binding tag and value commitment proof routes.

Routes:
    POST   /api/v1/binding-tag     — Derive a binding tag from its context
    POST   /api/v1/zkp/generate    — Commit to a value and prove its range
    POST   /api/v1/zkp/verify      — Verify a value commitment proof
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from provenance_escrow.api.deps import get_app_settings, get_verifier
from provenance_escrow.config import Settings
from provenance_escrow.domain.binding import BindingContext, generate_binding_tag
from provenance_escrow.schemas.zkp import (
    BindingTagRequest,
    BindingTagResponse,
    GenerateProofRequest,
    ProofResponse,
    VerifyProofRequest,
    VerifyProofResponse,
)
from provenance_escrow.services.verification_service import ValueCommitmentVerifier

router = APIRouter(prefix="/api/v1", tags=["ZKP"])


@router.post("/binding-tag", response_model=BindingTagResponse, summary="Derive a binding tag")
def derive_binding_tag(
    request: BindingTagRequest,
    settings: Settings = Depends(get_app_settings),
) -> BindingTagResponse:
    context = BindingContext(
        chain_id=request.chain_id or settings.chain_id,
        escrow_address=request.escrow_address,
        product_id=request.product_id,
        stage=request.stage,
        schema_version=request.schema_version or settings.default_schema_version,
        previous_vc_cid=request.previous_vc_cid,
    )
    return BindingTagResponse(
        binding_tag=generate_binding_tag(context),
        protocol_version=context.protocol_version,
    )


@router.post("/zkp/generate", response_model=ProofResponse, summary="Generate a value proof")
def generate_proof(
    request: GenerateProofRequest,
    verifier: ValueCommitmentVerifier = Depends(get_verifier),
) -> ProofResponse:
    record = verifier.generate(request.value, request.blinding, request.binding_tag)
    return ProofResponse.from_record(record)


@router.post("/zkp/verify", response_model=VerifyProofResponse, summary="Verify a value proof")
def verify_proof(
    request: VerifyProofRequest,
    verifier: ValueCommitmentVerifier = Depends(get_verifier),
) -> VerifyProofResponse:
    verified = verifier.verify(request.commitment, request.proof, request.binding_tag)
    return VerifyProofResponse(verified=verified)
