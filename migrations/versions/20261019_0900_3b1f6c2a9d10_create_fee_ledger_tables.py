"""create fee ledger tables

Revision ID: 3b1f6c2a9d10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b1f6c2a9d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    # Fee catalog
    op.create_table(
        'fee_types',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=24), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "category IN ('tuition','development','lab','library','sports',"
            "'computer','transport','examination','other')",
            name='ck_fee_types_category',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_fee_types'),
        sa.UniqueConstraint('name', name='uq_fee_types_name'),
    )

    op.create_table(
        'fee_structures',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('fee_type_id', sa.String(length=36), nullable=False),
        sa.Column('fee_type_name', sa.String(length=128), nullable=False),
        sa.Column('academic_year', sa.String(length=16), nullable=False),
        sa.Column('applicable_classes', sa.JSON(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('frequency', sa.String(length=16), nullable=False),
        sa.Column('due_day', sa.Integer(), nullable=False),
        sa.Column('is_optional', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "frequency IN ('monthly','quarterly','half_yearly','term','annual','one_time')",
            name='ck_fee_structures_frequency',
        ),
        sa.CheckConstraint('amount > 0', name='ck_fee_structures_amount_positive'),
        sa.CheckConstraint('due_day BETWEEN 1 AND 31', name='ck_fee_structures_due_day'),
        sa.ForeignKeyConstraint(['fee_type_id'], ['fee_types.id'], ondelete='RESTRICT',
                                name='fk_fee_structures_fee_type_id_fee_types'),
        sa.PrimaryKeyConstraint('id', name='pk_fee_structures'),
    )
    op.create_index('ix_fee_structures_fee_type_id', 'fee_structures', ['fee_type_id'])
    op.create_index('ix_fee_structures_year_type', 'fee_structures', ['academic_year', 'fee_type_id'])

    op.create_table(
        'student_fees',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('student_class', sa.String(length=32), nullable=False),
        sa.Column('student_section', sa.String(length=8), nullable=False),
        sa.Column('admission_number', sa.String(length=32), nullable=False),
        sa.Column('guardian_email', sa.String(length=255), nullable=True),
        sa.Column('guardian_phone', sa.String(length=32), nullable=True),
        sa.Column('fee_structure_id', sa.String(length=36), nullable=False),
        sa.Column('fee_type_id', sa.String(length=36), nullable=False),
        sa.Column('fee_type_name', sa.String(length=128), nullable=False),
        sa.Column('academic_year', sa.String(length=16), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('pending','partial','paid','overdue')", name='ck_student_fees_status'),
        sa.CheckConstraint('total_amount > 0', name='ck_student_fees_total_positive'),
        sa.CheckConstraint('discount_amount >= 0', name='ck_student_fees_discount_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_student_fees_paid_non_negative'),
        sa.ForeignKeyConstraint(['fee_structure_id'], ['fee_structures.id'], ondelete='RESTRICT',
                                name='fk_student_fees_fee_structure_id_fee_structures'),
        sa.ForeignKeyConstraint(['fee_type_id'], ['fee_types.id'],
                                name='fk_student_fees_fee_type_id_fee_types'),
        sa.PrimaryKeyConstraint('id', name='pk_student_fees'),
        sa.UniqueConstraint('student_id', 'fee_structure_id', 'period_start', name='uix_student_fee_period'),
    )
    op.create_index('ix_student_fees_student_id', 'student_fees', ['student_id'])
    op.create_index('ix_student_fees_fee_structure_id', 'student_fees', ['fee_structure_id'])
    op.create_index('ix_student_fees_fee_type_id', 'student_fees', ['fee_type_id'])
    op.create_index('ix_student_fees_class_section', 'student_fees', ['student_class', 'student_section'])
    op.create_index('ix_student_fees_student_year', 'student_fees', ['student_id', 'academic_year'])

    # Ledger
    op.create_table(
        'ledger_accounts',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('opening_balance', sa.Numeric(14, 2), nullable=False),
        sa.Column('balance', sa.Numeric(14, 2), nullable=False),
        sa.Column('last_sequence', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_ledger_accounts'),
    )

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.String(length=32), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('reference_id', sa.String(length=36), nullable=False),
        sa.Column('reference_number', sa.String(length=32), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance', sa.Numeric(14, 2), nullable=False),
        sa.Column('reverses_entry_id', sa.String(length=36), nullable=True),
        sa.CheckConstraint("type IN ('credit','debit')", name='ck_ledger_entries_type'),
        sa.CheckConstraint('amount > 0', name='ck_ledger_entries_amount_positive'),
        sa.ForeignKeyConstraint(['account_id'], ['ledger_accounts.id'],
                                name='fk_ledger_entries_account_id_ledger_accounts'),
        sa.ForeignKeyConstraint(['reverses_entry_id'], ['ledger_entries.id'],
                                name='fk_ledger_entries_reverses_entry_id_ledger_entries'),
        sa.PrimaryKeyConstraint('id', name='pk_ledger_entries'),
        sa.UniqueConstraint('sequence', name='uq_ledger_entries_sequence'),
        sa.UniqueConstraint('reverses_entry_id', name='uq_ledger_entries_reverses_entry_id'),
    )
    op.create_index('ix_ledger_entries_reference_id', 'ledger_entries', ['reference_id'])
    op.create_index('ix_ledger_entries_date', 'ledger_entries', ['date'])

    # Discounts and concessions
    op.create_table(
        'discount_rules',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('applicability', sa.String(length=16), nullable=False),
        sa.Column('applicable_fee_type_ids', sa.JSON(), nullable=False),
        sa.Column('applicable_classes', sa.JSON(), nullable=False),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('academic_year', sa.String(length=16), nullable=True),
        sa.Column('valid_from', sa.Date(), nullable=True),
        sa.Column('valid_to', sa.Date(), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("kind IN ('percentage','fixed_amount')", name='ck_discount_rules_kind'),
        sa.CheckConstraint('value > 0', name='ck_discount_rules_value_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_discount_rules'),
    )

    op.create_table(
        'concession_requests',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('student_class', sa.String(length=32), nullable=False),
        sa.Column('section', sa.String(length=8), nullable=False),
        sa.Column('admission_number', sa.String(length=32), nullable=False),
        sa.Column('fee_type_ids', sa.JSON(), nullable=False),
        sa.Column('concession_type', sa.String(length=16), nullable=False),
        sa.Column('concession_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('reason', sa.String(length=1000), nullable=False),
        sa.Column('valid_from', sa.Date(), nullable=True),
        sa.Column('valid_to', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('requested_by', sa.String(length=255), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(length=255), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=1000), nullable=True),
        sa.Column('total_concession_amount', sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("status IN ('pending','approved','rejected')", name='ck_concession_requests_status'),
        sa.CheckConstraint("concession_type IN ('percentage','fixed_amount')", name='ck_concession_requests_type'),
        sa.CheckConstraint('concession_value > 0', name='ck_concession_requests_value_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_concession_requests'),
    )
    op.create_index('ix_concession_requests_student_id', 'concession_requests', ['student_id'])

    op.create_table(
        'applied_discounts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('student_fee_id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('student_class', sa.String(length=32), nullable=False),
        sa.Column('fee_type_name', sa.String(length=128), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('discount_rule_id', sa.String(length=36), nullable=True),
        sa.Column('discount_rule_name', sa.String(length=128), nullable=True),
        sa.Column('concession_id', sa.String(length=36), nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('original_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('final_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('applied_by', sa.String(length=255), nullable=False),
        sa.Column('applied_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("source IN ('rule','concession','manual')", name='ck_applied_discounts_source'),
        sa.CheckConstraint('discount_amount > 0', name='ck_applied_discounts_amount_positive'),
        sa.ForeignKeyConstraint(['student_fee_id'], ['student_fees.id'], ondelete='CASCADE',
                                name='fk_applied_discounts_student_fee_id_student_fees'),
        sa.ForeignKeyConstraint(['discount_rule_id'], ['discount_rules.id'],
                                name='fk_applied_discounts_discount_rule_id_discount_rules'),
        sa.ForeignKeyConstraint(['concession_id'], ['concession_requests.id'],
                                name='fk_applied_discounts_concession_id_concession_requests'),
        sa.PrimaryKeyConstraint('id', name='pk_applied_discounts'),
    )
    op.create_index('ix_applied_discounts_student_fee_id', 'applied_discounts', ['student_fee_id'])
    op.create_index('ix_applied_discounts_student_id', 'applied_discounts', ['student_id'])
    op.create_index('ix_applied_discounts_discount_rule_id', 'applied_discounts', ['discount_rule_id'])
    op.create_index('ix_applied_discounts_concession_id', 'applied_discounts', ['concession_id'])
    op.create_index('ix_applied_discounts_fee_source', 'applied_discounts', ['student_fee_id', 'source'])

    # Installment plans
    op.create_table(
        'installment_plans',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('fee_structure_id', sa.String(length=36), nullable=False),
        sa.Column('fee_type_name', sa.String(length=128), nullable=False),
        sa.Column('academic_year', sa.String(length=16), nullable=False),
        sa.Column('applicable_classes', sa.JSON(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('number_of_installments', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('number_of_installments >= 1', name='ck_installment_plans_count'),
        sa.ForeignKeyConstraint(['fee_structure_id'], ['fee_structures.id'], ondelete='RESTRICT',
                                name='fk_installment_plans_fee_structure_id_fee_structures'),
        sa.PrimaryKeyConstraint('id', name='pk_installment_plans'),
    )
    op.create_index('ix_installment_plans_fee_structure_id', 'installment_plans', ['fee_structure_id'])

    op.create_table(
        'installments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('plan_id', sa.String(length=36), nullable=False),
        sa.Column('installment_number', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_installments_amount_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_installments_paid_non_negative'),
        sa.ForeignKeyConstraint(['plan_id'], ['installment_plans.id'], ondelete='CASCADE',
                                name='fk_installments_plan_id_installment_plans'),
        sa.PrimaryKeyConstraint('id', name='pk_installments'),
        sa.UniqueConstraint('plan_id', 'installment_number', name='uix_installments_plan_number'),
    )
    op.create_index('ix_installments_plan_id', 'installments', ['plan_id'])

    # Escalation and reminders
    op.create_table(
        'escalation_rules',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('threshold_days', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(length=16), nullable=False),
        sa.Column('recipient', sa.String(length=16), nullable=False),
        sa.Column('template', sa.String(length=2000), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('threshold_days >= 0', name='ck_escalation_rules_threshold'),
        sa.CheckConstraint("channel IN ('sms','email','whatsapp')", name='ck_escalation_rules_channel'),
        sa.CheckConstraint("recipient IN ('parent','student','principal')", name='ck_escalation_rules_recipient'),
        sa.PrimaryKeyConstraint('id', name='pk_escalation_rules'),
    )

    op.create_table(
        'reminder_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('student_fee_id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('student_class', sa.String(length=32), nullable=False),
        sa.Column('escalation_rule_id', sa.String(length=36), nullable=True),
        sa.Column('escalation_level', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(length=16), nullable=False),
        sa.Column('recipient', sa.String(length=255), nullable=False),
        sa.Column('message', sa.String(length=2000), nullable=False),
        sa.Column('days_overdue', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('error', sa.String(length=500), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('sent','failed')", name='ck_reminder_logs_status'),
        sa.ForeignKeyConstraint(['student_fee_id'], ['student_fees.id'], ondelete='CASCADE',
                                name='fk_reminder_logs_student_fee_id_student_fees'),
        sa.ForeignKeyConstraint(['escalation_rule_id'], ['escalation_rules.id'], ondelete='SET NULL',
                                name='fk_reminder_logs_escalation_rule_id_escalation_rules'),
        sa.PrimaryKeyConstraint('id', name='pk_reminder_logs'),
    )
    op.create_index('ix_reminder_logs_student_fee_id', 'reminder_logs', ['student_fee_id'])
    op.create_index('ix_reminder_logs_student_id', 'reminder_logs', ['student_id'])
    op.create_index('ix_reminder_logs_fee_rule', 'reminder_logs', ['student_fee_id', 'escalation_rule_id'])

    # Receipts and payments
    op.create_table(
        'receipts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('student_class', sa.String(length=32), nullable=False),
        sa.Column('student_section', sa.String(length=8), nullable=False),
        sa.Column('admission_number', sa.String(length=32), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False),
        sa.Column('transaction_ref', sa.String(length=64), nullable=True),
        sa.Column('remarks', sa.String(length=500), nullable=True),
        sa.Column('idempotency_key', sa.String(length=64), nullable=True),
        sa.Column('generated_by', sa.String(length=255), nullable=False),
        sa.Column('generated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('total_amount > 0', name='ck_receipts_total_positive'),
        sa.CheckConstraint(
            "payment_mode IN ('cash','upi','bank_transfer','cheque','dd','online')",
            name='ck_receipts_payment_mode',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_receipts'),
        sa.UniqueConstraint('receipt_number', name='uq_receipts_receipt_number'),
        sa.UniqueConstraint('sequence', name='uq_receipts_sequence'),
        sa.UniqueConstraint('idempotency_key', name='uq_receipts_idempotency_key'),
    )
    op.create_index('ix_receipts_student_id', 'receipts', ['student_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('receipt_id', sa.String(length=36), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('student_fee_id', sa.String(length=36), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('student_class', sa.String(length=32), nullable=False),
        sa.Column('student_section', sa.String(length=8), nullable=False),
        sa.Column('admission_number', sa.String(length=32), nullable=False),
        sa.Column('fee_type_name', sa.String(length=128), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False),
        sa.Column('transaction_ref', sa.String(length=64), nullable=True),
        sa.Column('remarks', sa.String(length=500), nullable=True),
        sa.Column('collected_by', sa.String(length=255), nullable=False),
        sa.Column('collected_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        sa.ForeignKeyConstraint(['receipt_id'], ['receipts.id'], name='fk_payments_receipt_id_receipts'),
        sa.ForeignKeyConstraint(['student_fee_id'], ['student_fees.id'], ondelete='RESTRICT',
                                name='fk_payments_student_fee_id_student_fees'),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
        sa.UniqueConstraint('receipt_id', 'line_no', name='uix_payments_receipt_line'),
    )
    op.create_index('ix_payments_receipt_id', 'payments', ['receipt_id'])
    op.create_index('ix_payments_receipt_number', 'payments', ['receipt_number'])
    op.create_index('ix_payments_student_fee_id', 'payments', ['student_fee_id'])
    op.create_index('ix_payments_student_id', 'payments', ['student_id'])
    op.create_index('ix_payments_collected_at', 'payments', ['collected_at'])

    op.create_table(
        'document_sequences',
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('name', name='pk_document_sequences'),
    )

    # Expenses
    op.create_table(
        'expenses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('expense_number', sa.String(length=32), nullable=False),
        sa.Column('category', sa.String(length=24), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('vendor_name', sa.String(length=255), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('invoice_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('requested_by', sa.String(length=255), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approval_remarks', sa.String(length=500), nullable=True),
        sa.Column('rejected_by', sa.String(length=255), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('paid_by', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('payment_ref', sa.String(length=64), nullable=True),
        sa.CheckConstraint(
            "category IN ('salary','utilities','maintenance','supplies','infrastructure','events','other')",
            name='ck_expenses_category',
        ),
        sa.CheckConstraint("status IN ('pending_approval','approved','rejected','paid')", name='ck_expenses_status'),
        sa.CheckConstraint('amount > 0', name='ck_expenses_amount_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_expenses'),
        sa.UniqueConstraint('expense_number', name='uq_expenses_expense_number'),
    )

    # Online payment orders
    op.create_table(
        'online_payment_orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('fee_ids', sa.JSON(), nullable=False),
        sa.Column('fee_amounts', sa.JSON(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('gateway', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_link', sa.String(length=255), nullable=True),
        sa.Column('transaction_id', sa.String(length=64), nullable=True),
        sa.Column('receipt_number', sa.String(length=32), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('created','processing','completed','failed','unapplied')", name='ck_online_payment_orders_status'
        ),
        sa.CheckConstraint('amount > 0', name='ck_online_payment_orders_amount_positive'),
        sa.ForeignKeyConstraint(['receipt_number'], ['receipts.receipt_number'],
                                name='fk_online_payment_orders_receipt_number_receipts'),
        sa.PrimaryKeyConstraint('id', name='pk_online_payment_orders'),
        sa.UniqueConstraint('order_id', name='uq_online_payment_orders_order_id'),
    )
    op.create_index('ix_online_payment_orders_student_id', 'online_payment_orders', ['student_id'])


def downgrade():
    op.drop_table('online_payment_orders')
    op.drop_table('expenses')
    op.drop_table('document_sequences')
    op.drop_table('payments')
    op.drop_table('receipts')
    op.drop_table('reminder_logs')
    op.drop_table('escalation_rules')
    op.drop_table('installments')
    op.drop_table('installment_plans')
    op.drop_table('applied_discounts')
    op.drop_table('concession_requests')
    op.drop_table('discount_rules')
    op.drop_table('ledger_entries')
    op.drop_table('ledger_accounts')
    op.drop_table('student_fees')
    op.drop_table('fee_structures')
    op.drop_table('fee_types')
