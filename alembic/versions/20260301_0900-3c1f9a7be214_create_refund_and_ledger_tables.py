"""create_refund_and_ledger_tables

Revision ID: 3c1f9a7be214
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f9a7be214'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _token_table(name: str, comment: str) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='用户ID'),
        sa.Column('custom_token_id', sa.String(length=100), nullable=False, comment='业务令牌编号'),
        sa.Column('amount_paid', sa.BigInteger(), nullable=False, server_default='0', comment='已付金额（最小货币单位）'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='active', comment='令牌状态'),
        sa.Column('gateway_order_id', sa.String(length=100), nullable=True, comment='网关订单ID'),
        sa.Column('gateway_payment_id', sa.String(length=100), nullable=True, comment='网关支付ID'),
        sa.Column('refund_details', sa.JSON(), nullable=True, comment='退款子状态快照'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('custom_token_id'),
        comment=comment,
    )
    op.create_index(f'ix_{name}_id', name, ['id'], unique=False)
    op.create_index(f'ix_{name}_user_id', name, ['user_id'], unique=False)
    op.create_index(f'ix_{name}_gateway_payment_id', name, ['gateway_payment_id'], unique=False)


def upgrade() -> None:
    # 退款记录
    op.create_table(
        'refund_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('refund_id', sa.String(length=100), nullable=False, comment='退款ID'),
        sa.Column('gateway_refund_id', sa.String(length=100), nullable=False, comment='网关退款ID'),
        sa.Column('original_payment_id', sa.String(length=100), nullable=False, comment='原网关支付ID'),
        sa.Column('original_order_id', sa.String(length=100), nullable=True, comment='原网关订单ID'),
        sa.Column('refund_amount', sa.BigInteger(), nullable=False, comment='退款金额（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码 ISO-4217'),
        sa.Column('refund_status', sa.String(length=20), nullable=False, server_default='initiated', comment='退款状态: initiated/processed/successful/failed/cancelled'),
        sa.Column('gateway_refund_status', sa.String(length=50), nullable=True, comment='网关最近返回的退款状态'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='用户ID'),
        sa.Column('transaction_type', sa.String(length=30), nullable=False, server_default='unknown', comment='交易类型: token/reservation-token/installment-plan/unknown'),
        sa.Column('transaction_id', sa.Integer(), nullable=True, comment='所属交易ID'),
        sa.Column('installment_year', sa.Integer(), nullable=True, comment='分期年度'),
        sa.Column('refund_reason', sa.Text(), nullable=False, comment='退款原因'),
        sa.Column('refunded_by', sa.String(length=100), nullable=False, comment='操作人'),
        sa.Column('refund_method', sa.String(length=30), nullable=False, server_default='original', comment='退款方式'),
        sa.Column('notes', sa.Text(), nullable=True, comment='备注（取消原因、降级/孤儿标记）'),
        sa.Column('initiated_at', sa.DateTime(timezone=True), nullable=True, comment='发起时间'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='网关处理时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('refund_id'),
        comment='退款记录表，跟踪网关退款生命周期'
    )
    op.create_index('ix_refund_records_id', 'refund_records', ['id'], unique=False)
    op.create_index('ix_refund_records_gateway_refund_id', 'refund_records', ['gateway_refund_id'], unique=False)
    op.create_index('ix_refund_records_original_payment_id', 'refund_records', ['original_payment_id'], unique=False)
    op.create_index('ix_refund_records_refund_status', 'refund_records', ['refund_status'], unique=False)
    op.create_index('ix_refund_records_user_id', 'refund_records', ['user_id'], unique=False)
    op.create_index('ix_refund_records_payment_status', 'refund_records', ['original_payment_id', 'refund_status'], unique=False)
    op.create_index('ix_refund_records_user_created', 'refund_records', ['user_id', 'created_at'], unique=False)
    op.create_index('ix_refund_records_created_at', 'refund_records', ['created_at'], unique=False)
    op.create_index('ix_refund_records_transaction', 'refund_records', ['transaction_type', 'transaction_id'], unique=False)

    # 令牌类交易
    _token_table('prepayment_tokens', '预付款令牌')
    _token_table('reservation_tokens', '预约令牌')

    # 年度维保分期计划
    op.create_table(
        'installment_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='用户ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='年度维保分期计划'
    )
    op.create_index('ix_installment_plans_id', 'installment_plans', ['id'], unique=False)
    op.create_index('ix_installment_plans_user_id', 'installment_plans', ['user_id'], unique=False)

    op.create_table(
        'installment_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False, comment='所属分期计划'),
        sa.Column('year', sa.Integer(), nullable=False, comment='年度'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='应付金额（最小货币单位）'),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否已付'),
        sa.Column('gateway_order_id', sa.String(length=100), nullable=True, comment='网关订单ID'),
        sa.Column('gateway_payment_id', sa.String(length=100), nullable=True, comment='网关支付ID'),
        sa.Column('refund_details', sa.JSON(), nullable=True, comment='退款子状态快照'),
        sa.ForeignKeyConstraint(['plan_id'], ['installment_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plan_id', 'year', name='uq_installment_entries_plan_year'),
        comment='分期计划年度条目'
    )
    op.create_index('ix_installment_entries_id', 'installment_entries', ['id'], unique=False)
    op.create_index('ix_installment_entries_plan_id', 'installment_entries', ['plan_id'], unique=False)
    op.create_index('ix_installment_entries_gateway_payment_id', 'installment_entries', ['gateway_payment_id'], unique=False)


def downgrade() -> None:
    op.drop_table('installment_entries')
    op.drop_table('installment_plans')
    op.drop_table('reservation_tokens')
    op.drop_table('prepayment_tokens')
    op.drop_table('refund_records')
