"""Create KPI source tables for local development

Revision ID: create_kpi_read_tables
Revises:
Create Date: 2026-10-17

Production databases already hold these tables (the unified table is a
materialised view there). Legacy tables are created with one of their
historical column layouts.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'create_kpi_read_tables'
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = 'kpi'


def upgrade():
    op.execute(f'CREATE SCHEMA IF NOT EXISTS {SCHEMA}')

    op.create_table(
        'dim_channel',
        sa.Column('channel_id', sa.BigInteger(), primary_key=True),
        sa.Column('channel_code', sa.String(64), nullable=True),
        sa.Column('channel_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        schema=SCHEMA,
    )
    op.create_table(
        'sales_actuals_monthly',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('channel_id', sa.BigInteger(), sa.ForeignKey(f'{SCHEMA}.dim_channel.channel_id'), nullable=True),
        sa.Column('fiscal_month', sa.Date(), nullable=False),
        sa.Column('actual_amount_yen', sa.Numeric(18, 0), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        schema=SCHEMA,
    )
    op.create_index('idx_sales_actuals_month', 'sales_actuals_monthly', ['fiscal_month'], schema=SCHEMA)

    op.create_table(
        'kpi_sales_monthly_computed_v2',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('channel_code', sa.String(64), nullable=True),
        sa.Column('fiscal_month', sa.Date(), nullable=False),
        sa.Column('actual_amount_yen', sa.Numeric(18, 0), nullable=True),
        schema=SCHEMA,
    )
    op.create_index('idx_computed_v2_month', 'kpi_sales_monthly_computed_v2', ['fiscal_month'], schema=SCHEMA)

    op.create_table(
        'kpi_sales_monthly_unified_v1',
        sa.Column('channel_code', sa.String(64), primary_key=True),
        sa.Column('month', sa.Date(), primary_key=True),
        sa.Column('amount', sa.Numeric(18, 0), nullable=True),
        schema=SCHEMA,
    )

    op.create_table(
        'kpi_manual_entries_v1',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('metric', sa.String(64), nullable=False),
        sa.Column('channel_code', sa.String(64), nullable=True),
        sa.Column('month', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(18, 0), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        schema=SCHEMA,
    )

    # Legacy tables, read through to_jsonb and the month prober
    op.create_table(
        'kpi_sales_monthly_final_v1',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('channel_code', sa.String(64), nullable=True),
        sa.Column('fiscal_month', sa.Date(), nullable=True),
        sa.Column('fiscal_ym', sa.String(7), nullable=True),
        sa.Column('actual_amount_yen', sa.Numeric(18, 0), nullable=True),
        schema=SCHEMA,
    )
    op.create_table(
        'wholesale_oem_sales',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('sale_date', sa.Date(), nullable=True),
        sa.Column('sale_ym', sa.String(7), nullable=True),
        sa.Column('amount_yen', sa.Numeric(18, 0), nullable=True),
        schema=SCHEMA,
    )


def downgrade():
    for table in (
        'wholesale_oem_sales',
        'kpi_sales_monthly_final_v1',
        'kpi_manual_entries_v1',
        'kpi_sales_monthly_unified_v1',
        'kpi_sales_monthly_computed_v2',
        'sales_actuals_monthly',
        'dim_channel',
    ):
        op.drop_table(table, schema=SCHEMA)
