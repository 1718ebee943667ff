"""Application services — wallets and proof verification."""

from provenance_escrow.services.payment_service import PaymentService
from provenance_escrow.services.verification_service import ValueCommitmentVerifier

__all__ = ["PaymentService", "ValueCommitmentVerifier"]
