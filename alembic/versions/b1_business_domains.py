"""Add business table with custom-domain monitoring columns

Revision ID: b1_business_domains
"""
from alembic import op
import sqlalchemy as sa

revision = "b1_business_domains"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "business",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tier", sa.String(20), nullable=False, server_default="free"),
        sa.Column("hostname", sa.String(255), nullable=True),
        sa.Column("subdomain", sa.String(63), nullable=True),
        sa.Column("host_type", sa.String(20), nullable=False, server_default="subdomain"),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("canonical_preference", sa.String(8), nullable=True),
        sa.Column("cname_monitoring_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cname_check_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cname_setup_email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("render_domain_added", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("domain_health_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("domain_health_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_business_id", "business", ["id"])
    op.create_index("ix_business_hostname", "business", ["hostname"])
    op.create_index("ix_business_subdomain", "business", ["subdomain"])
    op.create_index("ix_business_status", "business", ["status"])
    # sweep query: status + flag + age
    op.create_index(
        "ix_business_cname_monitoring",
        "business",
        ["status", "cname_monitoring_active", "updated_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_business_cname_monitoring", table_name="business")
    op.drop_index("ix_business_status", table_name="business")
    op.drop_index("ix_business_subdomain", table_name="business")
    op.drop_index("ix_business_hostname", table_name="business")
    op.drop_index("ix_business_id", table_name="business")
    op.drop_table("business")
