"""Students table and row-level security for tenant-scoped data

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM, UUID

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Every table carrying tenant_id; new scoped tables are appended here.
TENANT_SCOPED_TABLES = ["students"]

student_status_enum = ENUM(
    "ACTIVE", "INACTIVE", "TRANSFERRED", "GRADUATED", name="studentstatus", create_type=False
)
gender_enum = ENUM("MALE", "FEMALE", "OTHER", name="gender", create_type=False)


def upgrade() -> None:
    # --- Helper functions ---
    # An unset or empty app.tenant_id yields the nil UUID, which matches no tenant.
    op.execute("""
        CREATE OR REPLACE FUNCTION current_tenant_id()
        RETURNS UUID LANGUAGE sql STABLE AS $$
          SELECT COALESCE(
            NULLIF(current_setting('app.tenant_id', true), ''),
            '00000000-0000-0000-0000-000000000000'
          )::UUID;
        $$;
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION is_bypass_rls()
        RETURNS BOOLEAN LANGUAGE sql STABLE AS $$
          SELECT COALESCE(current_setting('app.bypass_rls', true), 'false') = 'true';
        $$;
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION set_tenant_id()
        RETURNS TRIGGER LANGUAGE plpgsql AS $$
        BEGIN
          IF is_bypass_rls() THEN
            IF NEW.tenant_id IS NULL THEN
              RAISE EXCEPTION 'tenant_id is required on % during elevated access', TG_TABLE_NAME;
            END IF;
            RETURN NEW;
          END IF;
          IF current_tenant_id() = '00000000-0000-0000-0000-000000000000'::UUID THEN
            RAISE EXCEPTION 'app.tenant_id must be set for INSERT on %', TG_TABLE_NAME;
          END IF;
          IF NEW.tenant_id IS NULL THEN
            NEW.tenant_id := current_tenant_id();
          ELSIF NEW.tenant_id <> current_tenant_id() THEN
            RAISE EXCEPTION 'Cannot insert into % for a different tenant', TG_TABLE_NAME;
          END IF;
          RETURN NEW;
        END;
        $$;
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_tenant_id_change()
        RETURNS TRIGGER LANGUAGE plpgsql AS $$
        BEGIN
          IF NEW.tenant_id IS DISTINCT FROM OLD.tenant_id THEN
            RAISE EXCEPTION 'tenant_id of % rows is immutable', TG_TABLE_NAME;
          END IF;
          RETURN NEW;
        END;
        $$;
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_audit_log_mutation()
        RETURNS TRIGGER LANGUAGE plpgsql AS $$
        BEGIN
          RAISE EXCEPTION 'audit_logs is append-only';
        END;
        $$;
    """)

    # --- STUDENTS ---
    student_status_enum.create(op.get_bind(), checkfirst=True)
    gender_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "students",
        sa.Column("id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), sa.ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("admission_number", sa.String(20), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("middle_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("date_of_birth", sa.Date, nullable=False),
        sa.Column("gender", gender_enum, nullable=False),
        sa.Column("status", student_status_enum, server_default="ACTIVE", nullable=False),
        sa.Column("admission_date", sa.Date, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("tenant_id", "admission_number", name="uq_students_tenant_admission"),
    )
    op.create_index("ix_students_tenant_id", "students", ["tenant_id"])
    op.create_index("ix_students_tenant_name", "students", ["tenant_id", "last_name", "first_name"])

    # --- RLS on every tenant-scoped table ---
    for table in TENANT_SCOPED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY;")
        op.execute(f"""
            CREATE POLICY tenant_isolation_{table} ON {table}
              USING (tenant_id = current_tenant_id())
              WITH CHECK (tenant_id = current_tenant_id());
        """)
        op.execute(f"""
            CREATE POLICY bypass_rls_{table} ON {table}
              USING (is_bypass_rls())
              WITH CHECK (is_bypass_rls());
        """)
        op.execute(f"""
            CREATE TRIGGER trg_{table}_set_tenant
              BEFORE INSERT ON {table}
              FOR EACH ROW EXECUTE FUNCTION set_tenant_id();
        """)
        op.execute(f"""
            CREATE TRIGGER trg_{table}_tenant_immutable
              BEFORE UPDATE ON {table}
              FOR EACH ROW EXECUTE FUNCTION prevent_tenant_id_change();
        """)

    # --- AUDIT_LOGS RLS (append-only) ---
    op.execute("ALTER TABLE audit_logs ENABLE ROW LEVEL SECURITY;")
    op.execute("ALTER TABLE audit_logs FORCE ROW LEVEL SECURITY;")

    op.execute("""
        CREATE POLICY audit_logs_select_policy ON audit_logs FOR SELECT
          USING (is_bypass_rls() OR tenant_id = current_tenant_id());
    """)

    op.execute("""
        CREATE POLICY audit_logs_insert_policy ON audit_logs FOR INSERT
          WITH CHECK (is_bypass_rls() OR tenant_id = current_tenant_id());
    """)

    op.execute("""
        CREATE TRIGGER trg_audit_logs_immutable
          BEFORE UPDATE OR DELETE ON audit_logs
          FOR EACH ROW EXECUTE FUNCTION prevent_audit_log_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_audit_logs_immutable ON audit_logs;")
    op.execute("DROP POLICY IF EXISTS audit_logs_insert_policy ON audit_logs;")
    op.execute("DROP POLICY IF EXISTS audit_logs_select_policy ON audit_logs;")
    op.execute("ALTER TABLE audit_logs NO FORCE ROW LEVEL SECURITY;")
    op.execute("ALTER TABLE audit_logs DISABLE ROW LEVEL SECURITY;")

    op.drop_table("students")
    gender_enum.drop(op.get_bind(), checkfirst=True)
    student_status_enum.drop(op.get_bind(), checkfirst=True)

    op.execute("DROP FUNCTION IF EXISTS prevent_audit_log_mutation();")
    op.execute("DROP FUNCTION IF EXISTS prevent_tenant_id_change();")
    op.execute("DROP FUNCTION IF EXISTS set_tenant_id();")
    op.execute("DROP FUNCTION IF EXISTS is_bypass_rls();")
    op.execute("DROP FUNCTION IF EXISTS current_tenant_id();")
