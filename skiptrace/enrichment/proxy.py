"""
Enrichment Proxy - credit-metered access to the Versium API.

Sequence for every call:
    validate input -> gate check -> provider call -> deduct 1 -> record result

A provider error stops the sequence before the deduction, so failed calls
are free and leave no result behind.
"""

import logging
from typing import Dict, Any, List, NamedTuple, Optional

from postgrest.exceptions import APIError

from skiptrace.billing.credit_gate import CreditGate
from skiptrace.enrichment.column_mapping import apply_mappings, validate_mappings
from skiptrace.enrichment.versium_client import (
    CANONICAL_FIELDS,
    EnrichmentResponse,
    VersiumClient,
    normalize_fields,
)
from skiptrace.errors import InsufficientCredits, UpstreamProviderError, ValidationError
from skiptrace.models.query_result import QueryResult
from skiptrace.results.cache import ResultCache

logger = logging.getLogger(__name__)

METERED_KINDS = (
    QueryResult.KIND_CONTACT_APPEND,
    QueryResult.KIND_DEMOGRAPHIC_APPEND,
    QueryResult.KIND_INDIVIDUAL_SEARCH,
    QueryResult.KIND_PROPERTY_SEARCH,
    QueryResult.KIND_PHONE_SEARCH,
)

# Per-row outcomes in a batch result
ROW_MATCHED = 'matched'
ROW_NO_MATCH = 'no_match'
ROW_FAILED = 'failed'
ROW_SKIPPED = 'skipped'
ROW_INVALID = 'invalid'


class ProxyResult(NamedTuple):
    result_id: Optional[str]
    balance: int
    response: EnrichmentResponse


class BatchSummary(NamedTuple):
    result_id: Optional[str]
    processed: int
    failed: int
    skipped: int
    balance: int


def validate_request(kind: str, fields: Dict[str, Any]) -> None:
    """
    Minimum input per search type.

    Raises:
        ValidationError: kind unknown or not enough to search on
    """
    if kind not in METERED_KINDS:
        raise ValidationError(f"Unsupported search type: {kind}")

    has = lambda name: bool(fields.get(name))

    if kind == QueryResult.KIND_INDIVIDUAL_SEARCH:
        if not (has('firstName') or has('lastName') or has('email') or has('phone')):
            raise ValidationError("Please provide at least a name, email, or phone number to search.")

    elif kind == QueryResult.KIND_PROPERTY_SEARCH:
        if not (has('address') or has('owner')):
            raise ValidationError("Please provide either a property address or owner name.")

    elif kind == QueryResult.KIND_PHONE_SEARCH:
        if not (has('phone') or (has('firstName') and has('lastName'))):
            raise ValidationError("Please provide either a phone number or a full name.")

    elif not any(has(name) for name in CANONICAL_FIELDS):
        raise ValidationError("Please provide at least one of: name, address, email, or phone.")


def default_label(kind: str, fields: Dict[str, Any]) -> str:
    name = f"{fields.get('firstName', '')} {fields.get('lastName', '')}".strip()
    subject = (name or fields.get('email') or fields.get('phone')
               or fields.get('address') or fields.get('owner') or '')
    title = kind.replace('-', ' ').title()
    return f"{title}: {subject}" if subject else title


class EnrichmentProxy:

    def __init__(self, gate: CreditGate, client: VersiumClient,
                 results: ResultCache, batch_max_records: int = 500):
        self.gate = gate
        self.client = client
        self.results = results
        self.batch_max_records = batch_max_records

    def invoke(self, kind: str, account_id: str, request: Dict[str, Any],
               label: str = None) -> ProxyResult:
        """
        Run one metered lookup.

        Raises:
            ValidationError: bad kind or input (no gate check, no call)
            AccountNotFound: unknown account
            InsufficientCredits: refused before the call, or lost the
                deduction race after it (result discarded)
            UpstreamProviderError: provider failed; nothing deducted
        """
        fields = normalize_fields(request)
        validate_request(kind, fields)

        self.gate.require_credits(account_id)

        try:
            response = self.client.lookup(kind, fields)
        except UpstreamProviderError as e:
            logger.error(f"{kind} for user {account_id} failed, no credit charged: {e}")
            raise

        balance = self.gate.commit_deduction(account_id, reference=kind)
        result_id = self._record(account_id, kind, label or default_label(kind, fields), response.rows)

        return ProxyResult(result_id=result_id, balance=balance, response=response)

    def _record(self, account_id: str, kind: str, label: str,
                rows: List[Dict[str, Any]]) -> Optional[str]:
        # Credit already spent: the response is returned even if storing fails
        try:
            return self.results.record(account_id, kind, label, rows)
        except APIError as e:
            logger.error(f"Failed to store {kind} result for user {account_id}: {e}", exc_info=True)
            return None

    # =========================================================================
    # Batch upload
    # =========================================================================

    def process_batch(self, account_id: str, records: List[Dict[str, Any]],
                      mappings: List[Dict[str, Any]], label: str = None) -> BatchSummary:
        """
        Contact-append every mapped record, one credit per successful row.

        Stops when credits run out and marks the remaining rows skipped. A
        provider error on one row marks it failed and moves on.
        """
        problems = validate_mappings(mappings)
        if problems:
            raise ValidationError("; ".join(problems))
        if not records:
            raise ValidationError("No records to process")
        if len(records) > self.batch_max_records:
            raise ValidationError(f"Batch is limited to {self.batch_max_records} records")

        rows = apply_mappings(records, mappings)
        balance = self.gate.require_credits(account_id)

        output = []
        processed = failed = skipped = 0
        out_of_credits = False

        for index, row in enumerate(rows):
            if out_of_credits:
                output.append(dict(row, status=ROW_SKIPPED))
                skipped += 1
                continue

            fields = normalize_fields(row)
            if not any(fields.get(name) for name in CANONICAL_FIELDS):
                output.append(dict(row, status=ROW_INVALID))
                failed += 1
                continue

            decision = self.gate.check_and_reserve(account_id)
            if not decision.approved:
                out_of_credits = True
                output.append(dict(row, status=ROW_SKIPPED))
                skipped += 1
                continue

            try:
                response = self.client.contact_append(fields)
            except UpstreamProviderError as e:
                logger.warning(f"Batch row {index} for user {account_id} failed: {e}")
                output.append(dict(row, status=ROW_FAILED))
                failed += 1
                continue

            try:
                balance = self.gate.commit_deduction(account_id, reference=QueryResult.KIND_BATCH_UPLOAD)
            except InsufficientCredits:
                out_of_credits = True
                output.append(dict(row, status=ROW_SKIPPED))
                skipped += 1
                continue

            matches = response.rows if response.match_count else []
            output.append(dict(row, status=ROW_MATCHED if matches else ROW_NO_MATCH, matches=matches))
            processed += 1

        logger.info(
            f"Batch for user {account_id}: {processed} processed, {failed} failed, {skipped} skipped"
        )

        result_id = None
        if processed:
            result_id = self._record(
                account_id,
                QueryResult.KIND_BATCH_UPLOAD,
                label or f"Batch Upload ({len(rows)} records)",
                output,
            )
        else:
            balance = self.gate.check_and_reserve(account_id).balance

        return BatchSummary(
            result_id=result_id,
            processed=processed,
            failed=failed,
            skipped=skipped,
            balance=balance,
        )
