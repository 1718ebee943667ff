"""Proof backend implementations and factory.

Two backends:
    - HttpProofBackend:       The external Bulletproofs prover service
    - SimulatedProofBackend:  Deterministic keyed-digest proofs for dry runs

The ProofBackendFactory creates the correct backend from a config dict
whose "type" key names one of them.
"""

from provenance_escrow.domain.enums import ProverType
from provenance_escrow.domain.proof_protocol import ProofBackend, ZKProof
from provenance_escrow.provers.http_backend import HttpProofBackend
from provenance_escrow.provers.simulated import SimulatedProofBackend


class ProofBackendFactory:
    """Factory that creates a proof backend from a config dict.

    Usage:
        backend = ProofBackendFactory.create({"type": "http", "base_url": "http://localhost:5010"})

        # Dry-run mode:
        backend = ProofBackendFactory.create({"type": "simulated"})
    """

    _registry: dict[str, type] = {
        ProverType.HTTP.value: HttpProofBackend,
        ProverType.SIMULATED.value: SimulatedProofBackend,
    }

    @classmethod
    def create(cls, config: dict) -> ProofBackend:
        """Create a backend instance.

        Args:
            config: Dict with at least a "type" key; remaining keys are passed
                to the backend constructor.
                Example: {"type": "http", "timeout": 5}

        Raises:
            ValueError: If the type is unknown or missing.
        """
        backend_type = config.get("type")
        if not backend_type:
            raise ValueError(
                "prover config must contain a 'type' key. "
                f"Valid types: {list(cls._registry.keys())}"
            )

        backend_class = cls._registry.get(backend_type)
        if backend_class is None:
            raise ValueError(
                f"Unknown prover type: '{backend_type}'. "
                f"Valid types: {list(cls._registry.keys())}"
            )

        options = {key: value for key, value in config.items() if key != "type"}
        return backend_class(**options)

    @classmethod
    def get_supported_types(cls) -> list[str]:
        """Return the list of supported backend type strings."""
        return list(cls._registry.keys())


__all__ = [
    "HttpProofBackend",
    "ProofBackend",
    "ProofBackendFactory",
    "SimulatedProofBackend",
    "ZKProof",
]
