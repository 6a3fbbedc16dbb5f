"""
CSV column mapping for batch uploads.

Mirrors the upload dialog: each CSV header is mapped to one target field or
to "do_not_import". Only mapped columns reach the provider.
"""

import csv
import io
from typing import Dict, Any, List, Tuple

DO_NOT_IMPORT = 'do_not_import'

REQUIRED_FIELDS = ('first_name', 'last_name')

TARGET_FIELDS = (
    'first_name',
    'last_name',
    'email',
    'phone',
    'address',
    'city',
    'state',
    'zip',
    'company',
    'custom_field_1',
    'custom_field_2',
    'custom_field_3',
)


def guess_target(header: str) -> str:
    """Best-guess target field for a CSV header."""
    h = header.lower().strip()

    if 'first' in h and 'name' in h:
        return 'first_name'
    if 'last' in h and 'name' in h:
        return 'last_name'
    if 'email' in h:
        return 'email'
    if 'phone' in h or 'mobile' in h:
        return 'phone'
    if 'address' in h and 'city' not in h:
        return 'address'
    if 'city' in h:
        return 'city'
    if 'state' in h or 'province' in h:
        return 'state'
    if 'zip' in h or 'postal' in h:
        return 'zip'
    if 'company' in h or 'business' in h:
        return 'company'
    return DO_NOT_IMPORT


def suggest_mappings(headers: List[str]) -> List[Dict[str, Any]]:
    mappings = []
    for header in headers:
        target = guess_target(header)
        mappings.append({
            'source': header,
            'target': target,
            'isMapped': target != DO_NOT_IMPORT,
        })
    return mappings


def validate_mappings(mappings: List[Dict[str, Any]]) -> List[str]:
    """Return the problems with a mapping set (empty when usable)."""
    problems = []
    active = [m for m in mappings if m.get('isMapped') and m.get('target') != DO_NOT_IMPORT]

    unknown = sorted({m.get('target') for m in active if m.get('target') not in TARGET_FIELDS})
    if unknown:
        problems.append(f"Unknown target field(s): {', '.join(str(u) for u in unknown)}")

    targets = [m.get('target') for m in active]
    duplicates = sorted({t for t in targets if targets.count(t) > 1})
    if duplicates:
        problems.append(f"Target field(s) mapped more than once: {', '.join(duplicates)}")

    missing = [f for f in REQUIRED_FIELDS if f not in targets]
    if missing:
        problems.append(f"Required field(s) not mapped: {', '.join(missing)}")

    return problems


def apply_mappings(records: List[Dict[str, Any]],
                   mappings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Rename mapped columns to their target field and drop the rest."""
    active = [
        (m['source'], m['target'])
        for m in mappings
        if m.get('isMapped') and m.get('target') and m.get('target') != DO_NOT_IMPORT
    ]

    mapped = []
    for record in records:
        row = {}
        for source, target in active:
            value = record.get(source)
            if isinstance(value, str):
                value = value.strip()
            if value not in (None, ''):
                row[target] = value
        mapped.append(row)
    return mapped


def parse_csv(text: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Read CSV text into (headers, records). Blank lines are skipped."""
    reader = csv.DictReader(io.StringIO(text.lstrip('\ufeff')))
    headers = list(reader.fieldnames or [])
    records = [
        {k: v for k, v in row.items() if k is not None}
        for row in reader
        if any((v or '').strip() for v in row.values() if isinstance(v, str))
    ]
    return headers, records
