"""Create customer, loan, schedule and payment tables

Revision ID: 4b7e2d91c0a3
Revises:
Create Date: 2026-10-19 09:12:44.310562

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e2d91c0a3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('nic', sa.String(length=20), nullable=True),
        sa.Column('email', sa.String(length=120), nullable=True),
        sa.Column('electricity_account', sa.String(length=50), nullable=True),
        sa.Column('water_account', sa.String(length=50), nullable=True),
        sa.Column('village_officer_name', sa.String(length=200), nullable=True),
        sa.Column('village_officer_phone', sa.String(length=30), nullable=True),
        sa.Column('special_note', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_customer_number', 'customers', ['customer_number'], unique=True)
    op.create_index('ix_customers_nic', 'customers', ['nic'], unique=False)

    op.create_table('loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_number', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('principal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=7, scale=4), nullable=False),
        sa.Column('term_days', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_interest', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('daily_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loans_loan_number', 'loans', ['loan_number'], unique=True)
    op.create_index('ix_loans_customer_id', 'loans', ['customer_id'], unique=False)
    op.create_index('ix_loans_status', 'loans', ['status'], unique=False)

    op.create_table('loan_schedule_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('day', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('planned_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('due_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('remaining_balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['loan_id'], ['loans.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('loan_id', 'day', name='uq_loan_schedule_day')
    )
    op.create_index('ix_loan_schedule_entries_loan_id', 'loan_schedule_entries', ['loan_id'], unique=False)

    op.create_table('loan_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('collected_by', sa.String(length=100), nullable=True),
        sa.Column('scheduled_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('previous_pending', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('new_pending', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['loan_id'], ['loans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loan_payments_loan_id', 'loan_payments', ['loan_id'], unique=False)
    op.create_index('ix_loan_payments_customer_id', 'loan_payments', ['customer_id'], unique=False)
    op.create_index('ix_loan_payments_paid_at', 'loan_payments', ['paid_at'], unique=False)


def downgrade():
    op.drop_index('ix_loan_payments_paid_at', table_name='loan_payments')
    op.drop_index('ix_loan_payments_customer_id', table_name='loan_payments')
    op.drop_index('ix_loan_payments_loan_id', table_name='loan_payments')
    op.drop_table('loan_payments')
    op.drop_index('ix_loan_schedule_entries_loan_id', table_name='loan_schedule_entries')
    op.drop_table('loan_schedule_entries')
    op.drop_index('ix_loans_status', table_name='loans')
    op.drop_index('ix_loans_customer_id', table_name='loans')
    op.drop_index('ix_loans_loan_number', table_name='loans')
    op.drop_table('loans')
    op.drop_index('ix_customers_nic', table_name='customers')
    op.drop_index('ix_customers_customer_number', table_name='customers')
    op.drop_table('customers')
