"""Initial schema: users, cycles, memberships, invites, sessions, payments.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL CONSTRAINT pk_users PRIMARY KEY,
            username VARCHAR(64) NOT NULL CONSTRAINT uq_users_username UNIQUE,
            email VARCHAR(320) NOT NULL CONSTRAINT uq_users_email UNIQUE,
            password VARCHAR(256) NOT NULL,
            image TEXT,
            phone VARCHAR(32),
            twitter VARCHAR(64),
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_users_email_lower
        ON users(lower(email))
    """)

    # --- Cycles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS cycle (
            id SERIAL CONSTRAINT pk_cycle PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            host_id INTEGER NOT NULL CONSTRAINT fk_cycle_host_id_users REFERENCES users(id),
            frequency_days INTEGER NOT NULL CHECK (frequency_days > 0),
            payment NUMERIC(12, 2) NOT NULL CHECK (payment > 0),
            start_date DATE,
            has_started BOOLEAN NOT NULL DEFAULT false,
            has_ended BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Memberships ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_cycle (
            id SERIAL CONSTRAINT pk_user_cycle PRIMARY KEY,
            user_id INTEGER NOT NULL CONSTRAINT fk_user_cycle_user_id_users REFERENCES users(id),
            cycle_id INTEGER NOT NULL CONSTRAINT fk_user_cycle_cycle_id_cycle REFERENCES cycle(id),
            has_received BOOLEAN NOT NULL DEFAULT false,
            CONSTRAINT uq_user_cycle_user_id_cycle_id UNIQUE (user_id, cycle_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_cycle_user_id ON user_cycle(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_cycle_cycle_id ON user_cycle(cycle_id)")

    # --- Invites ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS invites (
            id SERIAL CONSTRAINT pk_invites PRIMARY KEY,
            cycle_id INTEGER NOT NULL CONSTRAINT fk_invites_cycle_id_cycle REFERENCES cycle(id),
            user_id INTEGER NOT NULL CONSTRAINT fk_invites_user_id_users REFERENCES users(id),
            inviter_id INTEGER CONSTRAINT fk_invites_inviter_id_users REFERENCES users(id),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_invites_cycle_id_user_id UNIQUE (cycle_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_invites_cycle_id ON invites(cycle_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_invites_user_id ON invites(user_id)")

    # --- Sessions & payments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            id SERIAL CONSTRAINT pk_sessions PRIMARY KEY,
            cycle_id INTEGER NOT NULL CONSTRAINT fk_sessions_cycle_id_cycle REFERENCES cycle(id),
            due_date DATE NOT NULL,
            winner_id INTEGER CONSTRAINT fk_sessions_winner_id_user_cycle REFERENCES user_cycle(id),
            all_paid BOOLEAN NOT NULL DEFAULT false
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_sessions_cycle_id ON sessions(cycle_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS payments (
            id SERIAL CONSTRAINT pk_payments PRIMARY KEY,
            user_cycle_id INTEGER NOT NULL CONSTRAINT fk_payments_user_cycle_id_user_cycle REFERENCES user_cycle(id),
            session_id INTEGER NOT NULL CONSTRAINT fk_payments_session_id_sessions REFERENCES sessions(id),
            has_paid BOOLEAN NOT NULL DEFAULT false,
            CONSTRAINT uq_payments_user_cycle_id_session_id UNIQUE (user_cycle_id, session_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_payments_session_id ON payments(session_id)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_payments_unpaid
        ON payments(session_id) WHERE NOT has_paid
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS payments CASCADE")
    op.execute("DROP TABLE IF EXISTS sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS invites CASCADE")
    op.execute("DROP TABLE IF EXISTS user_cycle CASCADE")
    op.execute("DROP TABLE IF EXISTS cycle CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
