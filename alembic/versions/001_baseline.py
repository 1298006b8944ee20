"""Baseline migration - accounts schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

Creates the user_role enum, users, trainers and token_blacklist tables with
their indexes and updated_at triggers.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create accounts schema with all tables, indexes, and triggers."""

    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.execute("""
        DO $$ BEGIN
            CREATE TYPE user_role AS ENUM ('member', 'trainer', 'admin');
        EXCEPTION
            WHEN duplicate_object THEN NULL;
        END $$;
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            password VARCHAR(255) NOT NULL,
            full_name VARCHAR(255) NOT NULL,
            phone VARCHAR(20),
            role user_role NOT NULL DEFAULT 'member',
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            refresh_token TEXT,
            email_verified BOOLEAN NOT NULL DEFAULT FALSE,
            email_verification_token VARCHAR(255),
            email_verification_expires TIMESTAMPTZ,
            password_reset_token VARCHAR(255),
            password_reset_expires TIMESTAMPTZ,
            last_login TIMESTAMPTZ,
            login_attempts INTEGER NOT NULL DEFAULT 0,
            locked_until TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS trainers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            specialization VARCHAR(255) NOT NULL,
            bio TEXT,
            years_experience INTEGER NOT NULL DEFAULT 0 CHECK (years_experience >= 0),
            rating DECIMAL(3,2) DEFAULT 0.00 CHECK (rating >= 0 AND rating <= 5),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS token_blacklist (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            token_hash VARCHAR(255) UNIQUE NOT NULL,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            expires_at TIMESTAMPTZ NOT NULL,
            blacklisted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            reason VARCHAR(50) DEFAULT 'logout'
        )
    """)

    # Indexes
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_is_active ON users(is_active)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_users_email_verification_token "
        "ON users(email_verification_token)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_users_password_reset_token "
        "ON users(password_reset_token)"
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_trainers_specialization ON trainers(specialization)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_token_blacklist_user_id ON token_blacklist(user_id)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_token_blacklist_expires_at ON token_blacklist(expires_at)"
    )

    # updated_at trigger
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)
    for table in ("users", "trainers"):
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column()
        """)


def downgrade() -> None:
    """Drop the accounts schema."""
    op.execute("DROP TABLE IF EXISTS token_blacklist")
    op.execute("DROP TABLE IF EXISTS trainers")
    op.execute("DROP TABLE IF EXISTS users")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")
    op.execute("DROP TYPE IF EXISTS user_role")
