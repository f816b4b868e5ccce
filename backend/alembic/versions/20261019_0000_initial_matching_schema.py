"""initial_matching_schema

Revision ID: initial_matching_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa
from medmatch.database_types import GUID


revision = 'initial_matching_schema'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_PREDICATE = sa.text("status IN ('PENDING', 'ACCEPTED')")


def upgrade() -> None:
    op.create_table(
        'professionals',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('specialization', sa.String(), nullable=False),
        sa.Column('experience_years', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('location_label', sa.String(255), nullable=True),
        sa.Column('about', sa.Text(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_professionals_email'), 'professionals', ['email'], unique=True)
    op.create_index(op.f('ix_professionals_specialization'), 'professionals', ['specialization'], unique=False)

    op.create_table(
        'organizations',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=False, server_default=''),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_organizations_email'), 'organizations', ['email'], unique=True)

    op.create_table(
        'postings',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('organization_id', GUID(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('posting_type', sa.String(), nullable=False),
        sa.Column('specialization', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('location', sa.String(500), nullable=False, server_default=''),
        sa.Column('additional_information', sa.Text(), nullable=True),
        sa.Column('scheduled_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='POSTED'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_postings_organization_id'), 'postings', ['organization_id'], unique=False)
    op.create_index('idx_postings_status_created', 'postings', ['status', 'created_at'], unique=False)

    op.create_table(
        'responses',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('professional_id', GUID(), nullable=False),
        sa.Column('posting_id', GUID(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['posting_id'], ['postings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_responses_professional_id'), 'responses', ['professional_id'], unique=False)
    op.create_index(op.f('ix_responses_posting_id'), 'responses', ['posting_id'], unique=False)
    op.create_index('idx_responses_posting_status', 'responses', ['posting_id', 'status'], unique=False)
    # At most one PENDING/ACCEPTED response per (professional, posting)
    op.create_index(
        'uq_responses_active_pair',
        'responses',
        ['professional_id', 'posting_id'],
        unique=True,
        sqlite_where=ACTIVE_PREDICATE,
        postgresql_where=ACTIVE_PREDICATE,
    )

    op.create_table(
        'work_connections',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('response_id', GUID(), nullable=False),
        sa.Column('professional_id', GUID(), nullable=False),
        sa.Column('organization_id', GUID(), nullable=False),
        sa.Column('posting_id', GUID(), nullable=False),
        sa.Column('connected_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['response_id'], ['responses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id']),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['posting_id'], ['postings.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('response_id'),
    )
    op.create_index('idx_connections_organization', 'work_connections', ['organization_id', 'connected_at'], unique=False)
    op.create_index('idx_connections_professional', 'work_connections', ['professional_id', 'connected_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_connections_professional', table_name='work_connections')
    op.drop_index('idx_connections_organization', table_name='work_connections')
    op.drop_table('work_connections')

    op.drop_index('uq_responses_active_pair', table_name='responses')
    op.drop_index('idx_responses_posting_status', table_name='responses')
    op.drop_index(op.f('ix_responses_posting_id'), table_name='responses')
    op.drop_index(op.f('ix_responses_professional_id'), table_name='responses')
    op.drop_table('responses')

    op.drop_index('idx_postings_status_created', table_name='postings')
    op.drop_index(op.f('ix_postings_organization_id'), table_name='postings')
    op.drop_table('postings')

    op.drop_index(op.f('ix_organizations_email'), table_name='organizations')
    op.drop_table('organizations')

    op.drop_index(op.f('ix_professionals_specialization'), table_name='professionals')
    op.drop_index(op.f('ix_professionals_email'), table_name='professionals')
    op.drop_table('professionals')
