"""initial schema

Revision ID: a0f1c2d3e456
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a0f1c2d3e456'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('role', sa.Enum('customer', 'technician', 'admin', name='user_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('plan_name', sa.String(255), nullable=False, comment='プラン名'),
        sa.Column('plan_type', sa.String(50), nullable=False, comment='プラン種別'),
        sa.Column('plan_category', sa.Enum('cardoc', 'autodoc', name='plan_category'), nullable=False),
        sa.Column('billing_cycle', sa.Enum('monthly', 'yearly', name='billing_cycle'), nullable=False,
                  comment='請求サイクル: monthly=月額, yearly=年額'),
        sa.Column('price', sa.Integer(), nullable=False, comment='1請求サイクルあたりの料金 (USD)'),
        sa.Column('visits_per_month', sa.Integer(), nullable=False),
        sa.Column('max_vehicles', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('pending_payment', 'active', 'cancelled', 'expired', name='subscription_status'),
                  nullable=False),
        sa.Column('vehicle_count', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True, comment='bank_transfer / cash 等'),
        sa.Column('payment_reference', sa.String(255), nullable=True, comment='振込番号・レシート番号'),
        sa.Column('payment_confirmed', sa.Boolean(), nullable=False),
        sa.Column('payment_confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('payment_confirmed_by', sa.Integer(), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.ForeignKeyConstraint(['payment_confirmed_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscriptions_customer_id', 'subscriptions', ['customer_id'])
    op.create_index('ix_subscriptions_plan_id', 'subscriptions', ['plan_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('make', sa.String(100), nullable=False),
        sa.Column('model', sa.String(100), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('vin', sa.String(17), nullable=True),
        sa.Column('license_plate', sa.String(30), nullable=True),
        sa.Column('subscription_status', sa.Enum('pending_payment', 'active', name='vehicle_subscription_status'),
                  nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vehicles_customer_id', 'vehicles', ['customer_id'])
    op.create_index('ix_vehicles_subscription_id', 'vehicles', ['subscription_id'])

    op.create_table(
        'assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('technician_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('active', 'ended', name='assignment_status'), nullable=False),
        sa.Column('active_slot', sa.Integer(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('ended_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.ForeignKeyConstraint(['technician_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assigned_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['ended_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subscription_id', 'active_slot', name='uq_assignment_active_slot'),
    )
    op.create_index('ix_assignments_subscription_id', 'assignments', ['subscription_id'])
    op.create_index('ix_assignments_technician_id', 'assignments', ['technician_id'])

    op.create_table(
        'visits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('technician_id', sa.Integer(), nullable=False),
        sa.Column('visit_number', sa.Integer(), nullable=False, comment='購読内の連番 (1〜、欠番なし)'),
        sa.Column('status', sa.Enum('in_progress', 'pending_confirmation', 'confirmed', 'rejected',
                                    name='visit_status'), nullable=False),
        sa.Column('in_progress_slot', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('confirmed_by', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.Integer(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('findings', sa.Text(), nullable=True, comment='所見 (自由記述)'),
        sa.Column('system_findings', sa.JSON(), nullable=False, comment='[{system, status, note}]'),
        sa.Column('recommendations', sa.Text(), nullable=True),
        sa.Column('work_performed', sa.Text(), nullable=True),
        sa.Column('parts_used', sa.JSON(), nullable=False, comment='[{name, quantity, cost}]'),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.ForeignKeyConstraint(['assignment_id'], ['assignments.id']),
        sa.ForeignKeyConstraint(['technician_id'], ['users.id']),
        sa.ForeignKeyConstraint(['confirmed_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['rejected_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subscription_id', 'visit_number', name='uq_visit_number'),
        sa.UniqueConstraint('subscription_id', 'in_progress_slot', name='uq_visit_in_progress'),
    )
    op.create_index('ix_visits_subscription_id', 'visits', ['subscription_id'])
    op.create_index('ix_visits_technician_id', 'visits', ['technician_id'])
    op.create_index('ix_visits_status', 'visits', ['status'])

    op.create_table(
        'visit_inspections',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('visit_id', sa.Integer(), nullable=False),
        sa.Column('component', sa.String(255), nullable=False),
        sa.Column('status', sa.Enum('good', 'fair', 'needs_attention', 'critical', name='inspection_status'),
                  nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['visit_id'], ['visits.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_visit_inspections_visit_id', 'visit_inspections', ['visit_id'])

    op.create_table(
        'visit_media',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('visit_id', sa.Integer(), nullable=False),
        sa.Column('url', sa.String(1000), nullable=False),
        sa.Column('storage_path', sa.String(500), nullable=False),
        sa.Column('caption', sa.String(255), nullable=True, comment='元ファイル名'),
        sa.Column('media_type', sa.Enum('photo', 'video', name='media_type'), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['visit_id'], ['visits.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_visit_media_visit_id', 'visit_media', ['visit_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('payment_type', sa.String(20), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=False),
        sa.Column('reconciliation_key', sa.String(100), nullable=False, comment='支払い確認イベント単位のキー'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reconciliation_key'),
    )
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'])
    op.create_index('ix_payments_subscription_id', 'payments', ['subscription_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('payment_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('issue_date', sa.DateTime(), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=True),
        sa.Column('vehicle_info', sa.JSON(), nullable=True, comment='{brand, model, year}'),
        sa.Column('service_details', sa.String(500), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reconciliation_key', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reconciliation_key'),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_subscription_id', 'invoices', ['subscription_id'])

    op.create_table(
        'status_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('entity_type', sa.String(30), nullable=False, comment='subscription/assignment/visit/payment/invoice'),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=True, comment='親購読 (購読単位の購読用)'),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_type', 'entity_id', 'seq', name='uq_status_event_seq'),
    )
    op.create_index('ix_status_event_entity', 'status_events', ['entity_type', 'entity_id'])
    op.create_index('ix_status_events_subscription_id', 'status_events', ['subscription_id'])
    op.create_index('ix_status_events_actor_id', 'status_events', ['actor_id'])

    op.create_table(
        'system_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('level', sa.String(20), nullable=False, comment='INFO/WARNING/ERROR/CRITICAL'),
        sa.Column('event_type', sa.String(100), nullable=False, comment='イベント種別'),
        sa.Column('subscription_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True, comment='詳細データ'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_system_logs_level', 'system_logs', ['level'])
    op.create_index('ix_system_logs_event_type', 'system_logs', ['event_type'])
    op.create_index('ix_system_logs_subscription_id', 'system_logs', ['subscription_id'])
    op.create_index('ix_system_logs_user_id', 'system_logs', ['user_id'])
    op.create_index('ix_system_logs_created_at', 'system_logs', ['created_at'])


def downgrade() -> None:
    for table in (
        'system_logs', 'status_events', 'invoices', 'payments', 'visit_media', 'visit_inspections',
        'visits', 'assignments', 'vehicles', 'subscriptions', 'plans', 'users',
    ):
        op.drop_table(table)
