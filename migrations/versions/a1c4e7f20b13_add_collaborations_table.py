"""add collaborations table

Revision ID: a1c4e7f20b13
Revises:
Create Date: 2026-10-19 10:02:41.318204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c4e7f20b13'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('collaborations',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('source_agent', sa.String(length=64), nullable=False),
    sa.Column('target_agent', sa.String(length=64), nullable=False),
    sa.Column('collaboration_type', sa.String(length=32), nullable=False),
    sa.Column('trigger_reason', sa.String(length=128), nullable=False),
    sa.Column('context', sa.JSON(), nullable=False),
    sa.Column('status', sa.Enum('pending', 'in_progress', 'completed', 'failed', name='collaborationstatus', create_constraint=True), nullable=False),
    sa.Column('priority', sa.Enum('low', 'medium', 'high', 'critical', name='collaborationpriority', create_constraint=True), nullable=False),
    sa.Column('rule_id', sa.String(length=64), nullable=True),
    sa.Column('result', sa.JSON(), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('collaborations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_collaborations_source_agent'), ['source_agent'], unique=False)
        batch_op.create_index(batch_op.f('ix_collaborations_target_agent'), ['target_agent'], unique=False)
        batch_op.create_index(batch_op.f('ix_collaborations_status'), ['status'], unique=False)
        batch_op.create_index('ix_collaborations_status_created_at', ['status', 'created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('collaborations', schema=None) as batch_op:
        batch_op.drop_index('ix_collaborations_status_created_at')
        batch_op.drop_index(batch_op.f('ix_collaborations_status'))
        batch_op.drop_index(batch_op.f('ix_collaborations_target_agent'))
        batch_op.drop_index(batch_op.f('ix_collaborations_source_agent'))

    op.drop_table('collaborations')
    sa.Enum(name='collaborationpriority').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='collaborationstatus').drop(op.get_bind(), checkfirst=True)
