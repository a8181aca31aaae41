"""create tip pipeline tables

Revision ID: 5e2a91c0b7d4
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5e2a91c0b7d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('email', sa.Text(), nullable=False),
    sa.Column('provider', sa.Text(), nullable=True),
    sa.Column('provider_id', sa.Text(), nullable=True),
    sa.Column('name', sa.Text(), nullable=True),
    sa.Column('avatar', sa.Text(), nullable=True),
    sa.Column('interests', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('push_token', sa.Text(), nullable=True),
    sa.Column('device_type', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_provider', 'users', ['provider', 'provider_id'], unique=False)
    op.create_index(op.f('ix_users_push_token'), 'users', ['push_token'], unique=False)
    op.create_table('jobs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('status', sa.Enum('running', 'completed', 'failed', name='jobstatus'), nullable=False),
    sa.Column('started_at', sa.DateTime(), nullable=False),
    sa.Column('finished_at', sa.DateTime(), nullable=True),
    sa.Column('tips_count', sa.Integer(), nullable=False),
    sa.Column('errors', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('summary', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('tips',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('headline', sa.Text(), nullable=False),
    sa.Column('summary', sa.Text(), nullable=True),
    sa.Column('detail', sa.Text(), nullable=True),
    sa.Column('code_snippet', sa.Text(), nullable=True),
    sa.Column('category', sa.Text(), nullable=False),
    sa.Column('tags', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('topic_slug', sa.Text(), nullable=True),
    sa.Column('technology', sa.Text(), nullable=True),
    sa.Column('image', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('view_more', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('likes_count', sa.Integer(), nullable=False),
    sa.Column('saves_count', sa.Integer(), nullable=False),
    sa.Column('shares_count', sa.Integer(), nullable=False),
    sa.Column('views_count', sa.Integer(), nullable=False),
    sa.Column('status', sa.Enum('draft', 'published', name='tipstatus'), nullable=False),
    sa.Column('source', sa.Enum('ai', 'manual', name='tipsource'), nullable=False),
    sa.Column('ai_model', sa.Text(), nullable=True),
    sa.Column('job_id', sa.UUID(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tips_status_created', 'tips', ['status', 'created_at'], unique=False)
    op.create_index('ix_tips_category', 'tips', ['category'], unique=False)
    op.create_index(op.f('ix_tips_topic_slug'), 'tips', ['topic_slug'], unique=False)
    op.create_table('actions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('user_id', sa.UUID(), nullable=False),
    sa.Column('tip_id', sa.UUID(), nullable=False),
    sa.Column('action_type', sa.Enum('like', 'save', 'share', name='actiontype'), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['tip_id'], ['tips.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'tip_id', 'action_type', name='uq_action_user_tip_type')
    )
    op.create_index('ix_actions_tip_type', 'actions', ['tip_id', 'action_type'], unique=False)
    op.create_table('daily_pushes',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('date', sa.Text(), nullable=False),
    sa.Column('slot', sa.Integer(), nullable=False),
    sa.Column('tip_id', sa.UUID(), nullable=True),
    sa.Column('candidate_count', sa.Integer(), nullable=False),
    sa.Column('status', sa.Enum('sending', 'completed', 'failed', name='pushstatus'), nullable=False),
    sa.Column('claim_id', sa.UUID(), nullable=True),
    sa.Column('started_at', sa.DateTime(), nullable=False),
    sa.Column('finished_at', sa.DateTime(), nullable=True),
    sa.Column('sent_count', sa.Integer(), nullable=False),
    sa.Column('error_count', sa.Integer(), nullable=False),
    sa.Column('summary', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.ForeignKeyConstraint(['tip_id'], ['tips.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('date', 'slot', name='uq_daily_push_date_slot')
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('daily_pushes')
    op.drop_index('ix_actions_tip_type', table_name='actions')
    op.drop_table('actions')
    op.drop_index(op.f('ix_tips_topic_slug'), table_name='tips')
    op.drop_index('ix_tips_category', table_name='tips')
    op.drop_index('ix_tips_status_created', table_name='tips')
    op.drop_table('tips')
    op.drop_table('jobs')
    op.drop_index(op.f('ix_users_push_token'), table_name='users')
    op.drop_index('ix_users_provider', table_name='users')
    op.drop_table('users')
    sa.Enum(name='pushstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='actiontype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='tipsource').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='tipstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='jobstatus').drop(op.get_bind(), checkfirst=True)
