"""Client one-time login codes

Revision ID: 002_otp_codes
Revises: 001_initial_schema
Create Date: 2026-10-19

Changes:
1. otp_codes table (one hashed code per email, attempt counter)
2. Index on expires_at for the expiry sweep
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '002_otp_codes'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'otp_codes',
        sa.Column('email', sa.String(255), primary_key=True),
        sa.Column('code_hash', sa.String(255), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_otp_codes_expires', 'otp_codes', ['expires_at'])


def downgrade():
    op.drop_index('idx_otp_codes_expires', table_name='otp_codes')
    op.drop_table('otp_codes')
