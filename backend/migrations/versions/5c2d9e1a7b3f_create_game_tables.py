"""create user, game, team, game_user and factory tables

Revision ID: 5c2d9e1a7b3f
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d9e1a7b3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=True),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'game' not in existing_tables:
        op.create_table(
            'game',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('game_code', sa.String(length=4), nullable=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('stage', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_game_game_code', 'game', ['game_code'], unique=True)

    if 'team' not in existing_tables:
        op.create_table(
            'team',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'game_user' not in existing_tables:
        op.create_table(
            'game_user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=True),
            sa.Column('is_special', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('is_spectator', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('money', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('in', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('out', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('strength', sa.Integer(), nullable=False, server_default='0'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('game_id', 'user_id', name='uq_game_user'),
        )

    if 'factory' not in existing_tables:
        op.create_table(
            'factory',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('defence', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('in', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('out', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('latitude', sa.Float(), nullable=False),
            sa.Column('longitude', sa.Float(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )


def downgrade():
    op.drop_table('factory')
    op.drop_table('game_user')
    op.drop_table('team')
    op.drop_index('ix_game_game_code', table_name='game')
    op.drop_table('game')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
