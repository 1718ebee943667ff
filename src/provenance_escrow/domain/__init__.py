"""Domain layer — escrow rules, binding tags and commitments, no framework imports."""

from provenance_escrow.domain.binding import (
    BindingContext,
    CommitmentBinder,
    binding_tags_match,
    generate_binding_tag,
    tx_hash_binding_tag,
)
from provenance_escrow.domain.enums import EventType, Phase, ProverType, Stage
from provenance_escrow.domain.escrow import (
    EscrowEvent,
    EscrowTerms,
    ProductEscrow,
    TransporterBid,
)
from provenance_escrow.domain.exceptions import (
    AuthorizationError,
    EscrowError,
    FundsError,
    StateError,
    ValidationError,
)
from provenance_escrow.domain.factory import EscrowFactory, EscrowTemplate, ProductIdAllocator
from provenance_escrow.domain.proof_protocol import ProofBackend, ZKProof
from provenance_escrow.domain.state_machine import PhaseMachine, validate_transition

__all__ = [
    "AuthorizationError",
    "BindingContext",
    "CommitmentBinder",
    "EscrowError",
    "EscrowEvent",
    "EscrowFactory",
    "EscrowTemplate",
    "EscrowTerms",
    "EventType",
    "FundsError",
    "Phase",
    "PhaseMachine",
    "ProductEscrow",
    "ProductIdAllocator",
    "ProofBackend",
    "ProverType",
    "Stage",
    "StateError",
    "TransporterBid",
    "ValidationError",
    "ZKProof",
    "binding_tags_match",
    "generate_binding_tag",
    "tx_hash_binding_tag",
    "validate_transition",
]
