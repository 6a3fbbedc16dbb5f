"""
Ledger Store - the only code that reads or changes profiles.credits.

All mutations go through the deduct_credits / apply_payment_credit
database functions (see skiptrace.database.schema), so a balance is never
written with a read-modify-write from request handlers.
"""

import logging
from typing import Dict, Any, Optional, List, NamedTuple

import httpx
from postgrest.exceptions import APIError

from skiptrace.errors import AccountNotFound, LedgerWriteFailure
from skiptrace.models.account import Account
from skiptrace.models.credit_transaction import CreditTransaction

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = 'id, full_name, credits, is_stride_crm_user, stride_location_id, updated_at'


class GrantOutcome(NamedTuple):
    applied: bool
    balance: int


class LedgerStore:
    """Credit balance reads and conditional writes on the profiles table."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def get_account(self, account_id: str) -> Account:
        """
        Load the account row.

        Raises:
            AccountNotFound: no profile with this id
        """
        result = self.supabase.table('profiles').select(
            PROFILE_COLUMNS
        ).eq('id', account_id).limit(1).execute()

        if not result.data:
            raise AccountNotFound()

        return Account.from_dict(result.data[0])

    def get_balance(self, account_id: str) -> int:
        return self.get_account(account_id).credits or 0

    def try_deduct(self, account_id: str, amount: int = 1,
                   reference: str = None) -> Optional[int]:
        """
        Conditionally decrement credits by `amount`.

        Returns:
            The new balance, or None when the balance was lower than
            `amount` at write time (zero rows affected).
        """
        if amount <= 0:
            raise ValueError("amount must be positive")

        try:
            result = self.supabase.rpc('deduct_credits', {
                'p_user_id': account_id,
                'p_amount': amount,
                'p_reference': reference,
            }).execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"deduct_credits failed for user {account_id}: {e}")
            raise LedgerWriteFailure() from e

        balance = result.data
        if balance is None:
            logger.info(f"Conditional deduct of {amount} refused for user {account_id}")
            return None

        logger.info(f"User {account_id} used {amount} credit(s), balance now {balance}")
        return int(balance)

    def apply_payment_grant(self, session_id: str, account_id: str,
                            package_id: Optional[int], quantity: int,
                            source: str) -> GrantOutcome:
        """
        Credit `quantity` once per `session_id`.

        The idempotency marker and the increment are written in one database
        transaction; a repeat call with the same session id changes nothing
        and returns applied=False.

        Raises:
            LedgerWriteFailure: the write did not happen and should be retried
        """
        try:
            result = self.supabase.rpc('apply_payment_credit', {
                'p_session_id': session_id,
                'p_user_id': account_id,
                'p_package_id': package_id,
                'p_quantity': quantity,
                'p_source': source,
            }).execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"apply_payment_credit failed for session {session_id}: {e}")
            raise LedgerWriteFailure() from e

        data = result.data or {}
        if isinstance(data, list):
            data = data[0] if data else {}

        outcome = GrantOutcome(
            applied=bool(data.get('applied')),
            balance=int(data.get('balance') or 0),
        )

        if outcome.applied:
            logger.info(f"Added {quantity} credits to user {account_id} for session {session_id} ({source})")
        else:
            logger.info(f"Session {session_id} already applied, skipping credit grant")

        return outcome

    def list_transactions(self, account_id: str, limit: int = 50,
                          offset: int = 0,
                          transaction_type: str = None) -> List[Dict[str, Any]]:
        query = self.supabase.table('credit_transactions').select('*').eq('user_id', account_id)

        if transaction_type:
            query = query.eq('transaction_type', transaction_type)

        result = query.order('created_at', desc=True).range(offset, offset + limit - 1).execute()

        return [CreditTransaction.from_dict(row).to_dict() for row in (result.data or [])]
