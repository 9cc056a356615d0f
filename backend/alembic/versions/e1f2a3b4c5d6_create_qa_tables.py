"""Create sites, devices, features, results and result_details

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'e1f2a3b4c5d6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _catalog_table(name: str, *extra: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        *extra,
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('name', name=f'uq_{name}_name'),
    )


def upgrade() -> None:
    _catalog_table('sites')
    _catalog_table('devices')
    _catalog_table('features', sa.Column('kind', sa.String(length=40), nullable=True))

    op.create_table(
        'results',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('site_id', sa.Integer(), sa.ForeignKey('sites.id'), nullable=False),
        sa.Column('device_id', sa.Integer(), sa.ForeignKey('devices.id'), nullable=False),
        sa.Column('feature_id', sa.Integer(), sa.ForeignKey('features.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='processing'),
        sa.Column('browser', sa.String(length=255), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('duration', sa.Float(), nullable=True),
        sa.Column('error_log', sa.Text(), nullable=True),
        sa.Column('video_path', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_results_site_id', 'results', ['site_id'])
    op.create_index('ix_results_device_id', 'results', ['device_id'])
    op.create_index('ix_results_feature_id', 'results', ['feature_id'])
    op.create_index('ix_results_status', 'results', ['status'])
    op.create_index('ix_results_created_at', 'results', ['created_at'])

    op.create_table(
        'result_details',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'result_id', sa.Integer(),
            sa.ForeignKey('results.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('screenshot_path', sa.String(length=512), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_result_details_result_id', 'result_details', ['result_id'])


def downgrade() -> None:
    op.drop_index('ix_result_details_result_id', table_name='result_details')
    op.drop_table('result_details')
    for column in ('created_at', 'status', 'feature_id', 'device_id', 'site_id'):
        op.drop_index(f'ix_results_{column}', table_name='results')
    op.drop_table('results')
    op.drop_table('features')
    op.drop_table('devices')
    op.drop_table('sites')
