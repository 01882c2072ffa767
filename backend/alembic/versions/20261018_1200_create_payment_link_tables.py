"""create_payment_link_tables

Revision ID: 5d0c1e7a9b34
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5d0c1e7a9b34'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

network_enum = sa.Enum('POLYGON', 'SOLANA', name='network')
link_status_enum = sa.Enum('ACTIVE', 'PENDING_VERIFICATION', 'CONFIRMED', name='linkstatus')
payment_status_enum = sa.Enum('CONFIRMED', name='paymentstatus')


def upgrade() -> None:
    """Create payment_links, buyers and payments tables."""
    op.create_table(
        'payment_links',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('link_id', sa.String(32), nullable=False),
        sa.Column('wallet_address', sa.String(64), nullable=False),
        sa.Column('expected_amount', sa.Numeric(20, 6), nullable=False),
        sa.Column('network', network_enum, nullable=False),
        sa.Column('product_title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', link_status_enum, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('confirmed_at', sa.TIMESTAMP, nullable=True),
    )
    op.create_index('ix_payment_links_link_id', 'payment_links', ['link_id'], unique=True)
    op.create_index('ix_payment_links_wallet_address', 'payment_links', ['wallet_address'])
    op.create_index('ix_payment_links_network', 'payment_links', ['network'])
    op.create_index('ix_payment_links_status', 'payment_links', ['status'])

    op.create_table(
        'buyers',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('payment_link_id', sa.String(36), sa.ForeignKey('payment_links.id'), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('address_line_1', sa.String(255), nullable=True),
        sa.Column('address_line_2', sa.String(255), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('payment_link_id', 'email', name='uq_buyers_link_email'),
    )
    op.create_index('ix_buyers_payment_link_id', 'buyers', ['payment_link_id'])
    op.create_index('ix_buyers_email', 'buyers', ['email'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('tx_hash', sa.String(128), nullable=False),
        sa.Column('payment_link_id', sa.String(36), sa.ForeignKey('payment_links.id'), nullable=False),
        sa.Column('amount', sa.Numeric(20, 6), nullable=False),
        sa.Column('network', network_enum, nullable=False),
        sa.Column('from_address', sa.String(64), nullable=True),
        sa.Column('to_address', sa.String(64), nullable=False),
        sa.Column('block_reference', sa.BigInteger, nullable=True),
        sa.Column('block_timestamp', sa.TIMESTAMP, nullable=True),
        sa.Column('status', payment_status_enum, nullable=False),
        sa.Column('confirmed_at', sa.TIMESTAMP, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    # One transaction hash backs at most one payment, ever
    op.create_index('ix_payments_tx_hash', 'payments', ['tx_hash'], unique=True)
    op.create_index('ix_payments_payment_link_id', 'payments', ['payment_link_id'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])


def downgrade() -> None:
    """Drop payment link tables."""
    op.drop_table('payments')
    op.drop_table('buyers')
    op.drop_table('payment_links')
    payment_status_enum.drop(op.get_bind(), checkfirst=True)
    link_status_enum.drop(op.get_bind(), checkfirst=True)
    network_enum.drop(op.get_bind(), checkfirst=True)
