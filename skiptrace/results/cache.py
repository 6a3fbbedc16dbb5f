"""
Result Cache - append-only store of metered query outputs per account.

Backed by the dedicated query_results table. Every read filters on user_id,
so one account can never see another account's results.
"""

import csv
import io
import json
import logging
import uuid
from typing import Dict, Any, List

from skiptrace.errors import ResultNotFound, ValidationError
from skiptrace.models.query_result import QueryResult

logger = logging.getLogger(__name__)


class ResultCache:

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def record(self, account_id: str, kind: str, label: str,
               rows: List[Dict[str, Any]]) -> str:
        """Store one result and return its id."""
        if kind not in QueryResult.KINDS:
            raise ValidationError(f"Unknown result kind: {kind}")

        rows = list(rows or [])
        result = self.supabase.table('query_results').insert({
            'user_id': account_id,
            'kind': kind,
            'label': label or kind.replace('-', ' ').title(),
            'rows': rows,
            'record_count': len(rows),
        }).execute()

        result_id = result.data[0]['id']
        logger.info(f"Stored {kind} result {result_id} ({len(rows)} rows) for user {account_id}")
        return result_id

    def list(self, account_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """Summaries (no rows), newest first."""
        result = self.supabase.table('query_results').select(
            QueryResult.SUMMARY_COLUMNS
        ).eq('user_id', account_id).order(
            'created_at', desc=True
        ).range(offset, offset + limit - 1).execute()

        return [QueryResult.from_dict(row).to_summary() for row in (result.data or [])]

    def get(self, account_id: str, result_id: str) -> QueryResult:
        # query_results.id is a uuid column
        try:
            uuid.UUID(str(result_id))
        except ValueError:
            raise ResultNotFound()

        result = self.supabase.table('query_results').select('*').eq(
            'id', result_id
        ).eq('user_id', account_id).limit(1).execute()

        if not result.data:
            raise ResultNotFound()

        return QueryResult.from_dict(result.data[0])

    def export_csv(self, account_id: str, result_id: str) -> str:
        """Flatten a stored result to CSV; nested values are JSON-encoded."""
        query_result = self.get(account_id, result_id)
        rows = query_result.rows or []

        columns = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction='ignore')
        writer.writeheader()
        for row in rows:
            writer.writerow({
                key: json.dumps(value) if isinstance(value, (dict, list)) else value
                for key, value in row.items()
            })

        return buffer.getvalue()
