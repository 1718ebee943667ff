"""FastAPI dependency injection providers.

The factory, ledger, verifier, binder and VC store are process-wide
singletons built from settings. Tests swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from provenance_escrow.config import Settings, get_settings
from provenance_escrow.domain.binding import CommitmentBinder
from provenance_escrow.domain.escrow import EscrowTerms
from provenance_escrow.domain.factory import EscrowFactory, EscrowTemplate
from provenance_escrow.infrastructure.vc_store import CachedContentStore, build_content_store
from provenance_escrow.logging_config import get_logger
from provenance_escrow.provers import ProofBackendFactory
from provenance_escrow.services.payment_service import PaymentService
from provenance_escrow.services.verification_service import ValueCommitmentVerifier

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_payment_service() -> PaymentService:
    """Provide the shared wallet ledger.

    In development the accounts listed in ``dev_seed_accounts`` start funded.
    """
    settings = get_settings()
    ledger = PaymentService()
    if settings.is_development:
        for account in settings.dev_seed_accounts:
            ledger.fund(account, settings.dev_seed_balance_wei)
        if settings.dev_seed_accounts:
            logger.info("ledger.seeded", accounts=len(settings.dev_seed_accounts))
    return ledger


@lru_cache(maxsize=1)
def get_factory() -> EscrowFactory:
    """Provide the escrow factory configured from settings."""
    settings = get_settings()
    terms = EscrowTerms(
        seller_window=settings.seller_window_seconds,
        bid_window=settings.bid_window_seconds,
        delivery_window=settings.delivery_window_seconds,
        max_bids=settings.max_bids,
    )
    return EscrowFactory(
        owner=settings.factory_owner,
        payments=get_payment_service(),
        template=EscrowTemplate(terms=terms),
    )


@lru_cache(maxsize=1)
def get_verifier() -> ValueCommitmentVerifier:
    """Provide the value commitment verifier over the configured backend."""
    settings = get_settings()
    return ValueCommitmentVerifier(ProofBackendFactory.create({"type": settings.prover_type}))


@lru_cache(maxsize=1)
def get_binder() -> CommitmentBinder:
    """Provide a binder for the configured chain."""
    settings = get_settings()
    return CommitmentBinder(
        chain_id=settings.chain_id,
        schema_version=settings.default_schema_version,
    )


@lru_cache(maxsize=1)
def get_content_store() -> CachedContentStore:
    """Provide the VC content store configured from settings."""
    return build_content_store(get_settings())


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
