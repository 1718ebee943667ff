"""Payment Service — the wallet ledger escrows settle against.

Balances are kept in wei per checksummed address. Escrow instances hold
their own funds under their address, so an instance's balance is just
``balance_of(escrow.address)``.

Transfers can trigger a receive hook registered for the recipient. Hooks
stand in for recipient contracts and may call back into escrows, which is
how re-entrant recipients are exercised.

``transaction()`` opens a journal on the current thread. If an exception
escapes the block every balance change made inside it is reverted, which
gives escrow operations all-or-nothing settlement.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from provenance_escrow.domain.commitments import normalize_address
from provenance_escrow.domain.exceptions import FundsError, InsufficientFundsError
from provenance_escrow.logging_config import get_logger

logger = get_logger(__name__)

ReceiveHook = Callable[[str, int], None]


class PaymentService:
    """In-process ledger of native-value balances."""

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self._hooks: dict[str, ReceiveHook] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(normalize_address(account, "account"), 0)

    def fund(self, account: str, amount: int) -> None:
        """Mint ``amount`` wei into ``account`` (faucet for simulations and tests)."""
        self._check_amount(amount)
        self._apply(normalize_address(account, "account"), amount)
        logger.debug("payment.funded", account=account, amount=amount)

    def register_receiver(self, account: str, hook: ReceiveHook) -> None:
        """Call ``hook(sender, amount)`` whenever ``account`` receives a transfer."""
        self._hooks[normalize_address(account, "account")] = hook

    def unregister_receiver(self, account: str) -> None:
        self._hooks.pop(normalize_address(account, "account"), None)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def transfer(self, sender: str, recipient: str, amount: int) -> str:
        """Move ``amount`` wei and return a transaction hash.

        The recipient's receive hook runs after the balances are updated.
        Anything it raises propagates to the caller.

        Raises:
            InsufficientFundsError: If ``sender`` cannot cover ``amount``.
        """
        self._check_amount(amount)
        sender = normalize_address(sender, "sender")
        recipient = normalize_address(recipient, "recipient")

        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                raise InsufficientFundsError(sender, amount, available)
            self._apply(sender, -amount)
            self._apply(recipient, amount)

        tx_hash = "0x" + uuid.uuid4().hex + uuid.uuid4().hex
        logger.info(
            "payment.transferred",
            tx_hash=tx_hash,
            amount=amount,
            from_wallet=sender,
            to_wallet=recipient,
        )

        hook = self._hooks.get(recipient)
        if hook is not None:
            hook(sender, amount)
        return tx_hash

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Journal balance changes on this thread and revert them on error."""
        journals: list[list[tuple[str, int]]] = self._journals()
        journal: list[tuple[str, int]] = []
        journals.append(journal)
        try:
            yield
        except BaseException:
            journals.pop()
            with self._lock:
                for account, delta in reversed(journal):
                    self._balances[account] = self._balances.get(account, 0) - delta
            if journal:
                logger.info("payment.rolled_back", entries=len(journal))
            raise
        else:
            journals.pop()
            if journals:
                journals[-1].extend(journal)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _journals(self) -> list[list[tuple[str, int]]]:
        if not hasattr(self._local, "journals"):
            self._local.journals = []
        return self._local.journals

    def _apply(self, account: str, delta: int) -> None:
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + delta
        journals = self._journals()
        if journals:
            journals[-1].append((account, delta))

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise FundsError(f"Amount must be a non-negative integer of wei, got {amount!r}")
