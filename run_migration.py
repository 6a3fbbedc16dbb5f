#!/usr/bin/env python3
"""
Apply the credit ledger / result cache schema.

Statements are sent through the `exec` RPC. Projects without that helper
function can print the SQL and paste it into the Supabase SQL editor:

    python run_migration.py --print-sql
"""
import argparse
import sys

from postgrest.exceptions import APIError

from skiptrace.config import Settings
from skiptrace.database.schema import (
    MIGRATION_DESCRIPTION,
    MIGRATION_VERSION,
    SCHEMA_STATEMENTS,
)
from skiptrace.database.supabase_client import create_supabase_client


RECORD_MIGRATION_SQL = (
    "INSERT INTO schema_migrations (version, description) VALUES "
    f"('{MIGRATION_VERSION}', '{MIGRATION_DESCRIPTION}') ON CONFLICT (version) DO NOTHING;"
)


def render_sql() -> str:
    statements = [sql.strip() for sql in SCHEMA_STATEMENTS]
    statements.append(RECORD_MIGRATION_SQL)
    return "\n\n".join(statements)


def execute_sql(supabase, sql: str) -> bool:
    """Execute raw SQL using the exec RPC."""
    print(f"Executing: {sql.strip().splitlines()[0][:60]}...")
    try:
        supabase.rpc('exec', {'sql': sql}).execute()
    except APIError as e:
        print(f"Failed: {e}")
        return False
    print("Success!")
    return True


def run_migration() -> bool:
    supabase = create_supabase_client(Settings())

    print(f"=== Applying {MIGRATION_VERSION} ===")
    print(MIGRATION_DESCRIPTION)

    success_count = 0
    for i, sql in enumerate(SCHEMA_STATEMENTS, 1):
        print(f"\nStatement {i}/{len(SCHEMA_STATEMENTS)}:")
        if execute_sql(supabase, sql):
            success_count += 1

    print(f"\nCompleted {success_count}/{len(SCHEMA_STATEMENTS)} statements")

    if success_count != len(SCHEMA_STATEMENTS):
        print("\nRun `python run_migration.py --print-sql` and apply the output in the Supabase SQL editor")
        return False

    execute_sql(supabase, RECORD_MIGRATION_SQL)
    return True


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('--print-sql', action='store_true', help='print the migration SQL and exit')
    args = parser.parse_args()

    if args.print_sql:
        print(render_sql())
        sys.exit(0)

    sys.exit(0 if run_migration() else 1)
