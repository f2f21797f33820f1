"""Initial campaign schema.

Revision ID: 0001_init
Revises: None
Create Date: 2025-06-02
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("owner_user_id", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_companies_owner_user_id", "companies", ["owner_user_id"], unique=True)

    op.create_table(
        "campaigns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("state", sa.String(), nullable=False, server_default="draft"),
        sa.Column("meta", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_campaigns_company_id", "campaigns", ["company_id"])
    op.create_index("ix_campaigns_state", "campaigns", ["state"])
    op.create_index("ix_campaigns_created_at", "campaigns", ["created_at"])

    op.create_table(
        "creators",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("handle", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False, server_default="instagram"),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("gender", sa.String(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("tier", sa.String(), nullable=True),
        sa.Column("engagement_rate", sa.Float(), nullable=True),
        sa.Column("language", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("meta", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_creators_external_id", "creators", ["external_id"])
    op.create_index("ix_creators_handle", "creators", ["handle"])
    op.create_index("ix_creators_platform", "creators", ["platform"])
    op.create_index("ix_creators_tier", "creators", ["tier"])

    op.create_table(
        "campaign_creators",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id"), nullable=False),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("creators.id"), nullable=False),
        sa.Column("current_state", sa.String(), nullable=False, server_default="discovered"),
        sa.Column("assigned_budget", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_campaign_creators_campaign_id", "campaign_creators", ["campaign_id"])
    op.create_index("ix_campaign_creators_creator_id", "campaign_creators", ["creator_id"])
    op.create_index("ix_campaign_creators_current_state", "campaign_creators", ["current_state"])
    op.create_index("ix_campaign_creators_created_at", "campaign_creators", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_campaign_creators_created_at", table_name="campaign_creators")
    op.drop_index("ix_campaign_creators_current_state", table_name="campaign_creators")
    op.drop_index("ix_campaign_creators_creator_id", table_name="campaign_creators")
    op.drop_index("ix_campaign_creators_campaign_id", table_name="campaign_creators")
    op.drop_table("campaign_creators")

    op.drop_index("ix_creators_tier", table_name="creators")
    op.drop_index("ix_creators_platform", table_name="creators")
    op.drop_index("ix_creators_handle", table_name="creators")
    op.drop_index("ix_creators_external_id", table_name="creators")
    op.drop_table("creators")

    op.drop_index("ix_campaigns_created_at", table_name="campaigns")
    op.drop_index("ix_campaigns_state", table_name="campaigns")
    op.drop_index("ix_campaigns_company_id", table_name="campaigns")
    op.drop_table("campaigns")

    op.drop_index("ix_companies_owner_user_id", table_name="companies")
    op.drop_table("companies")
