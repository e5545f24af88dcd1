"""create pings table

Revision ID: 1a7c3e9b2f40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9b2f40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'pings' in set(insp.get_table_names()):
        return
    op.create_table(
        'pings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ip', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('player_count', sa.Integer(), nullable=True),
    )
    op.create_index('ix_pings_ip_timestamp', 'pings', ['ip', 'timestamp'])


def downgrade():
    op.drop_index('ix_pings_ip_timestamp', table_name='pings')
    op.drop_table('pings')
