"""Initial schema - users, surveys and the token ledger

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
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
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(100), unique=True, nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('google_id', sa.String(255), unique=True, nullable=True),
        sa.Column('email', sa.String(255), unique=True, nullable=True),
        sa.Column('qualtrics_api_token', sa.String(255), nullable=True),
        sa.Column('qualtrics_datacenter', sa.String(100), nullable=True),
        sa.Column('qualtrics_brand_id', sa.String(100), nullable=True),
        sa.Column('token_balance', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('token_balance >= 0', name='ck_users_token_balance_non_negative'),
    )

    # Surveys table
    op.create_table(
        'surveys',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('qualtrics_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_surveys_user_id', 'surveys', ['user_id'])

    # Token ledger
    op.create_table(
        'token_transactions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('delta', sa.Integer, nullable=False),
        sa.Column('balance_after', sa.Integer, nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('reference', sa.String(255), nullable=True),
        sa.Column('idempotency_key', sa.String(255), unique=True, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index(
        'ix_token_transactions_user_created', 'token_transactions', ['user_id', 'created_at']
    )


def downgrade() -> None:
    op.drop_index('ix_token_transactions_user_created', table_name='token_transactions')
    op.drop_table('token_transactions')
    op.drop_index('ix_surveys_user_id', table_name='surveys')
    op.drop_table('surveys')
    op.drop_table('users')
