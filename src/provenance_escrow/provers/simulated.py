"""SimulatedProofBackend — deterministic in-process stand-in for the prover.

Used for dry runs and tests where the external prover service is not
running. Commitments are keccak-based rather than Pedersen points, and
proofs are keyed digests over a transcript, so they carry no zero-knowledge
guarantees. What they do reproduce faithfully is the binding behaviour:
the tag is appended to the transcript, so a proof only verifies under
exactly the tag it was produced with.
"""

from __future__ import annotations

from eth_abi.packed import encode_packed
from eth_utils import keccak

from provenance_escrow.domain.commitments import MAX_PROOF_VALUE
from provenance_escrow.domain.exceptions import ValidationError
from provenance_escrow.domain.proof_protocol import ZKProof
from provenance_escrow.logging_config import get_logger

logger = get_logger(__name__)

_RANGE_DOMAIN = b"sim-range-proof-v1"
_TXID_DOMAIN = b"sim-txid-proof-v1"


class SimulatedProofBackend:
    """Keyed-digest proofs with the same bound/unbound semantics as the real prover.

    Controlled via config keys (see ProofBackendFactory):
        - secret (str): key mixed into every proof. Default "simulated-prover".
    """

    def __init__(self, secret: str = "simulated-prover") -> None:
        self._key = keccak(text=secret)

    def generate(self, value: int, blinding: bytes, binding_tag: bytes | None = None) -> ZKProof:
        if not 0 <= value <= MAX_PROOF_VALUE:
            raise ValidationError("value must fit in 64 bits", field="value")
        commitment = keccak(encode_packed(["uint256", "bytes32"], [value, blinding]))
        proof = self._transcript(_RANGE_DOMAIN, commitment, binding_tag)
        logger.debug("prover.simulated.generated", bound=binding_tag is not None)
        return ZKProof(
            commitment=commitment.hex(),
            proof=proof.hex(),
            binding_tag=binding_tag.hex() if binding_tag is not None else None,
            verified=True,
        )

    def verify(self, commitment: bytes, proof: bytes, binding_tag: bytes | None = None) -> bool:
        expected = self._transcript(_RANGE_DOMAIN, commitment, binding_tag)
        return proof == expected

    def commit_tx_hash(self, tx_hash: bytes, binding_tag: bytes | None = None) -> ZKProof:
        commitment = keccak(self._key + tx_hash)
        proof = self._transcript(_TXID_DOMAIN, commitment, binding_tag)
        return ZKProof(
            commitment=commitment.hex(),
            proof=proof.hex(),
            binding_tag=binding_tag.hex() if binding_tag is not None else None,
            verified=True,
        )

    def _transcript(self, domain: bytes, commitment: bytes, binding_tag: bytes | None) -> bytes:
        transcript = domain + self._key + commitment
        if binding_tag is not None:
            transcript += b"bind" + binding_tag
        first = keccak(transcript)
        return first + keccak(first + transcript)
