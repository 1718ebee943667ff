"""Wallet ledger routes.

Routes:
    GET    /api/v1/wallets/{account}   — Balance of an account
    POST   /api/v1/dev/fund            — Mint wei into an account (development only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from provenance_escrow.api.deps import get_app_settings, get_payment_service
from provenance_escrow.config import Settings
from provenance_escrow.domain.commitments import normalize_address
from provenance_escrow.logging_config import get_logger
from provenance_escrow.schemas.escrow import FundRequest, WalletResponse
from provenance_escrow.services.payment_service import PaymentService

router = APIRouter(prefix="/api/v1", tags=["Wallets"])
logger = get_logger(__name__)


@router.get("/wallets/{account}", response_model=WalletResponse, summary="Account balance")
def get_wallet(
    account: str,
    payments: PaymentService = Depends(get_payment_service),
) -> WalletResponse:
    account = normalize_address(account, "account")
    return WalletResponse(account=account, balance=payments.balance_of(account))


@router.post("/dev/fund", response_model=WalletResponse, summary="Development faucet")
def fund_wallet(
    request: FundRequest,
    payments: PaymentService = Depends(get_payment_service),
    settings: Settings = Depends(get_app_settings),
) -> WalletResponse:
    if not settings.is_development:
        raise HTTPException(status_code=403, detail="The faucet is only enabled in development")
    if request.amount > settings.dev_faucet_max_wei:
        raise HTTPException(
            status_code=422,
            detail=f"Faucet amount is capped at {settings.dev_faucet_max_wei} wei",
        )
    account = normalize_address(request.account, "account")
    payments.fund(account, request.amount)
    logger.info("wallet.funded", account=account, amount=request.amount)
    return WalletResponse(account=account, balance=payments.balance_of(account))
