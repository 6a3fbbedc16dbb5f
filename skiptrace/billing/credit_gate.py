"""
Credit Gate - check before a metered call, deduct only after it succeeds.

The check is advisory: it keeps accounts with no credits from reaching the
provider at all. The commit is authoritative: it is a conditional decrement
in the database, so two concurrent calls that both passed the check cannot
take the balance below zero. The loser of that race gets
InsufficientCredits and its result is discarded.
"""

import logging
from typing import NamedTuple

from skiptrace.billing.ledger_store import LedgerStore
from skiptrace.errors import InsufficientCredits

logger = logging.getLogger(__name__)

# Every metered call costs one credit
UNIT_COST = 1


class GateDecision(NamedTuple):
    approved: bool
    balance: int


class CreditGate:

    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger

    def check_and_reserve(self, account_id: str) -> GateDecision:
        """
        Read the balance and decide whether a metered call may start.

        Raises:
            AccountNotFound: unknown account
        """
        balance = self.ledger.get_balance(account_id)
        return GateDecision(approved=balance >= UNIT_COST, balance=balance)

    def require_credits(self, account_id: str) -> int:
        """Like check_and_reserve, but raises InsufficientCredits when refused."""
        decision = self.check_and_reserve(account_id)
        if not decision.approved:
            logger.info(f"User {account_id} refused: balance {decision.balance}")
            raise InsufficientCredits(balance=decision.balance)
        return decision.balance

    def commit_deduction(self, account_id: str, amount: int = UNIT_COST,
                         reference: str = None) -> int:
        """
        Deduct after the gated operation succeeded.

        Returns:
            The new balance.

        Raises:
            InsufficientCredits: a concurrent request spent the credit first
        """
        balance = self.ledger.try_deduct(account_id, amount, reference=reference)
        if balance is None:
            logger.warning(f"User {account_id} lost a concurrent deduction race, discarding result")
            raise InsufficientCredits(balance=self.ledger.get_balance(account_id))
        return balance
