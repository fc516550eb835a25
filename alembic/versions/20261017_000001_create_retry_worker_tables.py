"""Create retry worker tables.

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20261017_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    ]


def upgrade() -> None:
    """Create webhook, payout, instructor, payment, audit and notification tables."""

    op.create_table(
        'instructors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('stripe_connect_status', sa.String(20), nullable=False, server_default='not_connected'),
        sa.Column('stripe_verified', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('onboarding_complete', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('payouts_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('requirements', postgresql.JSONB(), nullable=True),
        sa.Column('capabilities', postgresql.JSONB(), nullable=True),
        sa.Column('account_health_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('external_account', postgresql.JSONB(), nullable=True),
        sa.Column('last_status_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_webhook_received', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disconnected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_instructors_stripe_account_id', 'instructors', ['stripe_account_id'], unique=True)

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('source', sa.String(32), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('stripe_event_id', sa.String(255), nullable=False),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('stripe_api_version', sa.String(32), nullable=True),
        sa.Column('event_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('raw_payload', sa.Text(), nullable=False, comment='Verbatim body, re-parsed on retry'),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('retry_backoff_multiplier', sa.Float(), nullable=False, server_default='2'),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('tags', postgresql.ARRAY(sa.String(100)), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('retry_count >= 0', name='check_webhook_retry_count_non_negative'),
        sa.CheckConstraint('max_retries > 0', name='check_webhook_max_retries_positive'),
    )
    op.create_index('ix_webhook_events_stripe_event_id', 'webhook_events', ['stripe_event_id'], unique=True)
    op.create_index('ix_webhook_events_event_type', 'webhook_events', ['event_type'])
    op.create_index('ix_webhook_events_source', 'webhook_events', ['source'])
    op.create_index('ix_webhook_events_status', 'webhook_events', ['status'])
    op.create_index('ix_webhook_events_stripe_account_id', 'webhook_events', ['stripe_account_id'])
    op.create_index('ix_webhook_events_received_at', 'webhook_events', ['received_at'])
    op.create_index('ix_webhook_events_next_retry_at', 'webhook_events', ['next_retry_at'])
    op.create_index('ix_webhook_events_status_next_retry', 'webhook_events', ['status', 'next_retry_at'])
    op.create_index('ix_webhook_events_type_received', 'webhook_events', ['event_type', 'received_at'])

    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('instructor_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('stripe_payout_id', sa.String(255), nullable=True),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('failure_category', sa.String(32), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('retry_config', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount >= 0', name='check_payout_amount_non_negative'),
        sa.CheckConstraint('retry_count >= 0', name='check_payout_retry_count_non_negative'),
        sa.CheckConstraint('max_retries > 0', name='check_payout_max_retries_positive'),
    )
    op.create_index('ix_payouts_instructor_id', 'payouts', ['instructor_id'])
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_stripe_payout_id', 'payouts', ['stripe_payout_id'], unique=True)
    op.create_index('ix_payouts_next_retry_at', 'payouts', ['next_retry_at'])
    op.create_index('ix_payouts_status_next_retry', 'payouts', ['status', 'next_retry_at'])

    op.create_table(
        'payout_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('payout_id', sa.Integer(), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('stripe_payout_id', sa.String(255), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('failure_category', sa.String(32), nullable=True),
        sa.Column('processing_time', sa.Integer(), nullable=True, comment='Attempt duration in milliseconds'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['payout_id'], ['payouts.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_payout_attempts_payout_id', 'payout_attempts', ['payout_id'])
    op.create_index('ix_payout_attempts_payout_attempt', 'payout_attempts', ['payout_id', 'attempt_number'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('instructor_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('instructor_share', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('platform_share', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('stripe_payment_id', sa.String(255), nullable=False),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('stripe_email', sa.String(255), nullable=True),
        sa.Column('receipt_url', sa.String(1024), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_payments_student_id', 'payments', ['student_id'])
    op.create_index('ix_payments_course_id', 'payments', ['course_id'])
    op.create_index('ix_payments_instructor_id', 'payments', ['instructor_id'])
    op.create_index('ix_payments_stripe_payment_id', 'payments', ['stripe_payment_id'], unique=True)

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('instructor_id', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('instructor_earning', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('platform_earning', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('payment_method', sa.String(32), nullable=False, server_default='card'),
        sa.Column('stripe_transaction_id', sa.String(255), nullable=False),
        sa.Column('stripe_transfer_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_transactions_student_id', 'transactions', ['student_id'])
    op.create_index('ix_transactions_course_id', 'transactions', ['course_id'])
    op.create_index('ix_transactions_instructor_id', 'transactions', ['instructor_id'])
    op.create_index('ix_transactions_stripe_transaction_id', 'transactions', ['stripe_transaction_id'], unique=True)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('category', sa.String(32), nullable=False),
        sa.Column('level', sa.String(16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('user_type', sa.String(16), nullable=True),
        sa.Column('resource_type', sa.String(32), nullable=True),
        sa.Column('resource_id', sa.String(255), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_level', 'audit_logs', ['level'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_category_timestamp', 'audit_logs', ['category', 'timestamp'])
    op.create_index('ix_audit_logs_resource', 'audit_logs', ['resource_type', 'resource_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('user_type', sa.String(16), nullable=False),
        sa.Column('type', sa.String(40), nullable=False),
        sa.Column('priority', sa.String(10), nullable=False, server_default='normal'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('related_resource_type', sa.String(32), nullable=True),
        sa.Column('related_resource_id', sa.String(255), nullable=True),
        sa.Column('action_url', sa.String(512), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop retry worker tables."""
    op.drop_table('notifications')
    op.drop_table('audit_logs')
    op.drop_table('transactions')
    op.drop_table('payments')
    op.drop_table('payout_attempts')
    op.drop_table('payouts')
    op.drop_table('webhook_events')
    op.drop_table('instructors')
