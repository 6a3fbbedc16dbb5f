"""
Database schema for the credit ledger, idempotency markers and result cache.

The two functions at the bottom are the only code paths that change
profiles.credits. Both run inside a single Postgres transaction, which is
what makes the conditional decrement and the exactly-once payment grant
atomic. Applied by run_migration.py.
"""

MIGRATION_VERSION = "20250101_credit_ledger_and_results"
MIGRATION_DESCRIPTION = "Credit ledger functions, processed payments, query results"

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        version VARCHAR(255) UNIQUE,
        description TEXT,
        applied_at TIMESTAMPTZ DEFAULT NOW()
    );
    """,
    """
    ALTER TABLE profiles
        ADD COLUMN IF NOT EXISTS credits INTEGER NOT NULL DEFAULT 0,
        ADD COLUMN IF NOT EXISTS is_stride_crm_user BOOLEAN NOT NULL DEFAULT FALSE,
        ADD COLUMN IF NOT EXISTS stride_location_id TEXT;
    """,
    """
    DO $$
    BEGIN
        IF NOT EXISTS (
            SELECT 1 FROM pg_constraint WHERE conname = 'profiles_credits_non_negative'
        ) THEN
            ALTER TABLE profiles
                ADD CONSTRAINT profiles_credits_non_negative CHECK (credits >= 0);
        END IF;
    END $$;
    """,
    """
    CREATE TABLE IF NOT EXISTS credit_packages (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        user_type_restriction TEXT
            CHECK (user_type_restriction IN ('stride_crm_user', 'non_stride_crm_user')),
        min_credits_to_purchase INTEGER NOT NULL CHECK (min_credits_to_purchase > 0),
        price_per_credit_usd_cents INTEGER NOT NULL CHECK (price_per_credit_usd_cents > 0),
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS processed_payments (
        session_id TEXT PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES profiles(id),
        package_id INTEGER,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        source TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS credit_transactions (
        id BIGSERIAL PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES profiles(id),
        transaction_type TEXT NOT NULL,
        amount INTEGER NOT NULL,
        balance_after INTEGER NOT NULL,
        reference TEXT,
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_credit_transactions_user_created
        ON credit_transactions(user_id, created_at DESC);
    """,
    """
    CREATE TABLE IF NOT EXISTS query_results (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL REFERENCES profiles(id),
        kind TEXT NOT NULL CHECK (kind IN (
            'contact-append', 'demographic-append', 'batch-upload',
            'individual-search', 'property-search', 'phone-search'
        )),
        label TEXT NOT NULL,
        rows JSONB NOT NULL DEFAULT '[]'::jsonb,
        record_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_query_results_user_created
        ON query_results(user_id, created_at DESC);
    """,
    """
    CREATE OR REPLACE FUNCTION deduct_credits(
        p_user_id UUID,
        p_amount INTEGER,
        p_reference TEXT DEFAULT NULL
    ) RETURNS INTEGER
    LANGUAGE plpgsql
    AS $$
    DECLARE
        v_balance INTEGER;
    BEGIN
        UPDATE profiles
           SET credits = credits - p_amount,
               updated_at = NOW()
         WHERE id = p_user_id
           AND credits >= p_amount
        RETURNING credits INTO v_balance;

        IF NOT FOUND THEN
            RETURN NULL;
        END IF;

        INSERT INTO credit_transactions (user_id, transaction_type, amount, balance_after, reference, description)
        VALUES (p_user_id, 'usage', -p_amount, v_balance, p_reference,
                'Used ' || p_amount || ' credit(s)');

        RETURN v_balance;
    END;
    $$;
    """,
    """
    CREATE OR REPLACE FUNCTION apply_payment_credit(
        p_session_id TEXT,
        p_user_id UUID,
        p_package_id INTEGER,
        p_quantity INTEGER,
        p_source TEXT
    ) RETURNS JSONB
    LANGUAGE plpgsql
    AS $$
    DECLARE
        v_balance INTEGER;
        v_inserted INTEGER;
    BEGIN
        INSERT INTO processed_payments (session_id, user_id, package_id, quantity, source)
        VALUES (p_session_id, p_user_id, p_package_id, p_quantity, p_source)
        ON CONFLICT (session_id) DO NOTHING;

        GET DIAGNOSTICS v_inserted = ROW_COUNT;

        IF v_inserted = 0 THEN
            SELECT credits INTO v_balance FROM profiles WHERE id = p_user_id;
            RETURN jsonb_build_object('applied', FALSE, 'balance', COALESCE(v_balance, 0));
        END IF;

        UPDATE profiles
           SET credits = credits + p_quantity,
               updated_at = NOW()
         WHERE id = p_user_id
        RETURNING credits INTO v_balance;

        IF NOT FOUND THEN
            RAISE EXCEPTION 'profile % not found', p_user_id USING ERRCODE = 'P0002';
        END IF;

        INSERT INTO credit_transactions (user_id, transaction_type, amount, balance_after, reference, description)
        VALUES (p_user_id,
                CASE WHEN p_source = 'sandbox' THEN 'sandbox_grant' ELSE 'purchase' END,
                p_quantity, v_balance, p_session_id,
                'Purchased ' || p_quantity || ' credits');

        RETURN jsonb_build_object('applied', TRUE, 'balance', v_balance);
    END;
    $$;
    """,
]
