"""001 – Leave ledger schema: directory, balances, requests, policies, audit trail.

Revision ID: 001_leave_ledger
Revises:
Create Date: 2026-10-17 10:00:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_leave_ledger"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("leave_status", ["pending", "approved", "rejected"]),
    ("leave_start_segment", ["shift_start", "shift_middle", "full_day"]),
    ("leave_end_segment", ["shift_middle", "shift_end", "full_day"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          SERIAL PRIMARY KEY,
            name        VARCHAR(150) NOT NULL UNIQUE,
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id              SERIAL PRIMARY KEY,
            name            VARCHAR(255) NOT NULL,
            email           VARCHAR(255) UNIQUE,
            department_id   INTEGER REFERENCES departments(id),
            designation     VARCHAR(150),
            is_active       BOOLEAN NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_department_id ON employees (department_id)")

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id                      SERIAL PRIMARY KEY,
            employee_id             INTEGER NOT NULL REFERENCES employees(id),
            year                    INTEGER NOT NULL,
            month                   INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
            paid_quota              INTEGER NOT NULL DEFAULT 2,
            paid_used               NUMERIC(6,2) NOT NULL DEFAULT 0 CHECK (paid_used >= 0),
            uninformed_leaves       NUMERIC(6,2) NOT NULL DEFAULT 0 CHECK (uninformed_leaves >= 0),
            next_month_deduction    NUMERIC(6,2) NOT NULL DEFAULT 0 CHECK (next_month_deduction >= 0),
            created_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_balance_employee_month UNIQUE (employee_id, year, month)
        )
    """)
    op.execute("CREATE INDEX ix_leave_balance_employee_id ON leave_balances (employee_id)")

    # ── 4. leave_requests ─────────────────────────────────────────────────
    # employee_id 0 marks a blocked date, so it carries no FK
    op.execute("""
        CREATE TABLE leave_requests (
            id                              SERIAL PRIMARY KEY,
            employee_id                     INTEGER NOT NULL,
            department_id                   INTEGER REFERENCES departments(id),
            status                          leave_status NOT NULL DEFAULT 'pending',
            reason                          TEXT,
            start_date                      DATE NOT NULL,
            end_date                        DATE NOT NULL,
            start_segment                   leave_start_segment NOT NULL DEFAULT 'full_day',
            end_segment                     leave_end_segment NOT NULL DEFAULT 'full_day',
            days_requested                  NUMERIC(6,2) NOT NULL DEFAULT 1,
            is_paid                         BOOLEAN NOT NULL DEFAULT TRUE,
            is_uninformed                   BOOLEAN NOT NULL DEFAULT FALSE,
            emergency_type                  VARCHAR(100),
            requested_swap_with_leave_id    INTEGER REFERENCES leave_requests(id) ON DELETE SET NULL,
            swap_responded_at               TIMESTAMPTZ,
            swap_accepted                   BOOLEAN,
            approved_via_swap               BOOLEAN NOT NULL DEFAULT FALSE,
            is_important_date_override      BOOLEAN NOT NULL DEFAULT FALSE,
            policy_reason_detail            TEXT,
            expected_return_date            DATE,
            acknowledged_by                 INTEGER REFERENCES employees(id),
            acknowledged_at                 TIMESTAMPTZ,
            decision_by                     INTEGER REFERENCES employees(id),
            decision_at                     TIMESTAMPTZ,
            decision_reason                 TEXT,
            created_at                      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at                      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute("CREATE INDEX ix_leave_employee_id ON leave_requests (employee_id)")
    op.execute("CREATE INDEX ix_leave_department_id ON leave_requests (department_id)")
    op.execute("CREATE INDEX ix_leave_status ON leave_requests (status)")
    op.execute("CREATE INDEX ix_leave_start_end_date ON leave_requests (start_date, end_date)")
    op.execute("CREATE INDEX ix_leave_swap_target ON leave_requests (requested_swap_with_leave_id)")

    # ── 5. leave_policies ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_policies (
            id              SERIAL PRIMARY KEY,
            policy_key      VARCHAR(100) NOT NULL UNIQUE,
            policy_value    JSON,
            description     TEXT,
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 6. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id              SERIAL PRIMARY KEY,
            actor_id        INTEGER REFERENCES employees(id),
            action          VARCHAR(50) NOT NULL,
            entity_type     VARCHAR(50) NOT NULL,
            entity_id       INTEGER NOT NULL,
            old_values      JSON,
            new_values      JSON,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail (actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail (entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail (action)")

    # ── Seed data: displayed policy ───────────────────────────────────────
    op.execute("""
        INSERT INTO leave_policies (policy_key, policy_value, description) VALUES
        ('monthly_paid_quota', '{"quota": 2}', 'Paid leave days per month'),
        ('uninformed_penalty_rule',
         '{"text": "Each uninformed leave day reduces paid leave quotas in future months until all such days have been deducted. No leaves this month are paid out in cash."}',
         'Shown next to the uninformed leave count')
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "leave_policies",
        "leave_requests",
        "leave_balances",
        "employees",
        "departments",
    ]
    for table in tables:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
