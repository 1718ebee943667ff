"""Proof Backend Protocol.

Defines the interface every zero-knowledge proof backend must implement.
This is a Protocol (structural subtyping) so concrete backends don't need
to inherit from a base class, they just need to match the shape.

The domain layer has ZERO imports from httpx or any transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ZKProof:
    """A value commitment together with its range proof.

    Attributes:
        commitment: 32-byte compressed commitment, ``0x``-less lowercase hex.
        proof: Serialized range proof, lowercase hex.
        binding_tag: 32-byte tag folded into the proof transcript, if any.
        verified: Whether the producing backend self-verified the proof.
    """

    commitment: str
    proof: str
    binding_tag: str | None = None
    verified: bool = False

    @property
    def is_bound(self) -> bool:
        return self.binding_tag is not None

    def to_dict(self) -> dict:
        """Serialize for embedding in a Verifiable Credential."""
        return {
            "commitment": self.commitment,
            "proof": self.proof,
            "binding_tag": self.binding_tag,
            "verified": self.verified,
        }


@runtime_checkable
class ProofBackend(Protocol):
    """Protocol that all proof backends must satisfy.

    Concrete implementations:
        - provers/http_backend.py  (external prover service over HTTP)
        - provers/simulated.py     (deterministic in-process stand-in)
    """

    def generate(self, value: int, blinding: bytes, binding_tag: bytes | None = None) -> ZKProof:
        """Commit to ``value`` and prove it lies in range, bound to ``binding_tag``."""
        ...

    def verify(self, commitment: bytes, proof: bytes, binding_tag: bytes | None = None) -> bool:
        """Return whether ``proof`` is valid for ``commitment`` under ``binding_tag``.

        A cryptographically invalid proof is ``False``; only malformed input
        or transport failure raises.
        """
        ...

    def commit_tx_hash(self, tx_hash: bytes, binding_tag: bytes | None = None) -> ZKProof:
        """Hide a 32-byte transaction hash behind a commitment."""
        ...
