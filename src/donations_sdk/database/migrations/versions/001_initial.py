"""Initial migration - gateways, customers, event log, batches, donations and subscriptions

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'gateways',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('provider', sa.String(50), nullable=False, server_default='stripe'),
        sa.Column('public_key', sa.Text(), nullable=True),
        sa.Column('private_key', sa.Text(), nullable=False),
        sa.Column('webhook_key', sa.Text(), nullable=True),
        sa.Column('product_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('church_id', 'provider', name='uq_gateways_church_provider'),
    )
    op.create_index('ix_gateways_church_id', 'gateways', ['church_id'])

    op.create_table(
        'customers',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=True),
        sa.Column('provider', sa.String(50), nullable=False, server_default='stripe'),
    )
    op.create_index('ix_customers_church_id', 'customers', ['church_id'])

    op.create_table(
        'event_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider_event_id', sa.String(255), nullable=False),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=True),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('church_id', 'provider_event_id', name='uq_event_logs_church_event'),
    )
    op.create_index('ix_event_logs_church_created', 'event_logs', ['church_id', 'created'])

    # current_key is the church id while a batch is open; unique so that a
    # church never has two open batches
    op.create_table(
        'donation_batches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('batch_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_key', sa.String(36), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_donation_batches_church_id', 'donation_batches', ['church_id'])

    op.create_table(
        'donations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('batch_id', sa.String(36), sa.ForeignKey('donation_batches.id'), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=True),
        sa.Column('donation_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.String(50), nullable=True),
        sa.Column('method_details', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_donations_batch_id', 'donations', ['batch_id'])
    op.create_index('ix_donations_person_id', 'donations', ['person_id'])
    op.create_index('ix_donations_church_date', 'donations', ['church_id', 'donation_date'])

    op.create_table(
        'fund_donations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('donation_id', sa.String(36), sa.ForeignKey('donations.id'), nullable=False),
        sa.Column('fund_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint('donation_id', 'fund_id', name='uq_fund_donations_donation_fund'),
    )
    op.create_index('ix_fund_donations_donation_id', 'fund_donations', ['donation_id'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=True),
        sa.Column('customer_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_subscriptions_church_id', 'subscriptions', ['church_id'])

    op.create_table(
        'subscription_funds',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('church_id', sa.String(36), nullable=False),
        sa.Column('subscription_id', sa.String(255), sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('fund_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
    )
    op.create_index('ix_subscription_funds_subscription_id', 'subscription_funds', ['subscription_id'])


def downgrade() -> None:
    op.drop_index('ix_subscription_funds_subscription_id', table_name='subscription_funds')
    op.drop_index('ix_subscriptions_church_id', table_name='subscriptions')
    op.drop_index('ix_fund_donations_donation_id', table_name='fund_donations')
    op.drop_index('ix_donations_church_date', table_name='donations')
    op.drop_index('ix_donations_person_id', table_name='donations')
    op.drop_index('ix_donations_batch_id', table_name='donations')
    op.drop_index('ix_donation_batches_church_id', table_name='donation_batches')
    op.drop_index('ix_event_logs_church_created', table_name='event_logs')
    op.drop_index('ix_customers_church_id', table_name='customers')
    op.drop_index('ix_gateways_church_id', table_name='gateways')

    op.drop_table('subscription_funds')
    op.drop_table('subscriptions')
    op.drop_table('fund_donations')
    op.drop_table('donations')
    op.drop_table('donation_batches')
    op.drop_table('event_logs')
    op.drop_table('customers')
    op.drop_table('gateways')
