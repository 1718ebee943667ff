"""Value commitment verification.

ValueCommitmentVerifier validates inputs, then delegates the cryptographic
check to a ProofBackend. It holds no mutable state, so one instance can be
shared by any number of threads.

Binding policy: the binding tag is part of the proof transcript. A proof
made under tag T verifies only when T is supplied again. Supplying no tag,
or a different one, yields ``False``. An unbound proof verifies only when
no tag is supplied.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from provenance_escrow.domain.binding import (
    BindingContext,
    binding_tags_match,
    generate_binding_tag,
)
from provenance_escrow.domain.commitments import MAX_PROOF_VALUE, commitments_match, parse_hex
from provenance_escrow.domain.exceptions import ValidationError
from provenance_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from provenance_escrow.domain.proof_protocol import ProofBackend, ZKProof

logger = get_logger(__name__)


class ValueCommitmentVerifier:
    """Checks value-commitment range proofs against an optional binding tag."""

    def __init__(self, backend: ProofBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> ProofBackend:
        return self._backend

    def verify(
        self,
        commitment: str | bytes,
        proof: str | bytes,
        binding_tag: str | bytes | None = None,
    ) -> bool:
        """Verify ``proof`` for ``commitment``, bound to ``binding_tag`` if given.

        Returns:
            True if the proof is valid under the given tag, else False.

        Raises:
            ValidationError: If an input is not well-formed hex of the right size.
            ProofServiceError: If the backend cannot be reached.
        """
        commitment_bytes = parse_hex(commitment, "commitment", size=32)
        proof_bytes = parse_hex(proof, "proof")
        if not proof_bytes:
            raise ValidationError("proof must not be empty", field="proof")
        tag_bytes = (
            parse_hex(binding_tag, "binding_tag", size=32) if binding_tag is not None else None
        )

        verified = bool(self._backend.verify(commitment_bytes, proof_bytes, tag_bytes))
        logger.info(
            "verifier.result",
            commitment=commitment_bytes.hex()[:16],
            bound=tag_bytes is not None,
            verified=verified,
        )
        return verified

    def verify_record(self, record: ZKProof) -> bool:
        """Verify a proof record under the tag it carries."""
        return self.verify(record.commitment, record.proof, record.binding_tag)

    def verify_in_context(self, record: ZKProof, context: BindingContext) -> bool:
        """Verify a proof record against the tag derived from ``context``.

        A record whose embedded tag differs from the expected one is rejected
        without asking the backend.
        """
        expected = generate_binding_tag(context)
        if record.binding_tag is not None and not binding_tags_match(record.binding_tag, expected):
            logger.warning(
                "verifier.tag_mismatch",
                product_id=context.product_id,
                stage=context.stage.name,
            )
            return False
        return self.verify(record.commitment, record.proof, expected)

    def generate(
        self,
        value: int,
        blinding: str | bytes,
        binding_tag: str | bytes | None = None,
    ) -> ZKProof:
        """Produce a commitment and range proof through the backend."""
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_PROOF_VALUE:
            raise ValidationError("value must be an unsigned 64-bit integer", field="value")
        blinding_bytes = parse_hex(blinding, "blinding", size=32)
        tag_bytes = (
            parse_hex(binding_tag, "binding_tag", size=32) if binding_tag is not None else None
        )
        return self._backend.generate(value, blinding_bytes, tag_bytes)

    def commit_tx_hash(
        self,
        tx_hash: str | bytes,
        binding_tag: str | bytes | None = None,
    ) -> ZKProof:
        """Commit to a transaction hash so a VC can reference it without revealing it."""
        tx_bytes = parse_hex(tx_hash, "tx_hash", size=32)
        tag_bytes = (
            parse_hex(binding_tag, "binding_tag", size=32) if binding_tag is not None else None
        )
        return self._backend.commit_tx_hash(tx_bytes, tag_bytes)

    @staticmethod
    def commitments_match(vc_commitment: str | None, on_chain_commitment: str | None) -> bool:
        return commitments_match(vc_commitment, on_chain_commitment)
