"""Tests for the ProofBackendFactory registry."""

from __future__ import annotations

import pytest

from provenance_escrow.provers import (
    HttpProofBackend,
    ProofBackendFactory,
    SimulatedProofBackend,
)


class TestProofBackendFactory:
    def test_create_simulated(self) -> None:
        backend = ProofBackendFactory.create({"type": "simulated"})
        assert isinstance(backend, SimulatedProofBackend)

    def test_create_http_with_options(self) -> None:
        backend = ProofBackendFactory.create(
            {"type": "http", "base_url": "http://prover:5010", "max_attempts": 1}
        )
        assert isinstance(backend, HttpProofBackend)
        backend.close()

    def test_options_forwarded(self) -> None:
        backend = ProofBackendFactory.create({"type": "simulated", "secret": "other"})
        default = ProofBackendFactory.create({"type": "simulated"})
        blinding = bytes(32)
        assert backend.generate(1, blinding).proof != default.generate(1, blinding).proof

    def test_missing_type(self) -> None:
        with pytest.raises(ValueError, match="'type' key"):
            ProofBackendFactory.create({})

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown prover type"):
            ProofBackendFactory.create({"type": "groth16"})

    def test_supported_types(self) -> None:
        assert set(ProofBackendFactory.get_supported_types()) == {"http", "simulated"}
