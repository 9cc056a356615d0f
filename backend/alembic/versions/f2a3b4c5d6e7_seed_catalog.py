"""Seed sites, devices and features

Revision ID: f2a3b4c5d6e7
Revises: e1f2a3b4c5d6
Create Date: 2026-10-16 09:05:00.000000

Features with a kind have a browser script; the rest are listed in the
dashboard but fail as "not implemented" when run.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'f2a3b4c5d6e7'
down_revision: Union[str, None] = 'e1f2a3b4c5d6'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SITES = ['senti.live', 'shorts.senti.live', 'hothinge.com', 'viblys.com']
DEVICES = ['Desktop', 'Tablet', 'Mobile']
FEATURES = [
    ('Chat Functionality', 'chat'),
    ('Paywall', None),
    ('Age Verification', 'age_verification'),
    ('In-App Bot-First Notifications', None),
    ('Video Playback', None),
    ('In-Video Ads', None),
    ('Dating Profile', None),
    ('Like & Follow', None),
    ('Ad Clicks', None),
    ('Mini Games & Energy Points', None),
    ('iFrame Slot Machine Games', 'slot_machine_iframe'),
    ('Localisation / Language Support', None),
    ('UI Stability & Consistency', None),
    ('Scrolling Home Page', 'scroll_home'),
    ('Premium Subscription', 'premium_subscription'),
]

_sites = sa.table('sites', sa.column('name', sa.String))
_devices = sa.table('devices', sa.column('name', sa.String))
_features = sa.table('features', sa.column('name', sa.String), sa.column('kind', sa.String))


def upgrade() -> None:
    op.bulk_insert(_sites, [{'name': name} for name in SITES])
    op.bulk_insert(_devices, [{'name': name} for name in DEVICES])
    op.bulk_insert(_features, [{'name': name, 'kind': kind} for name, kind in FEATURES])


def downgrade() -> None:
    op.execute(_features.delete().where(_features.c.name.in_([name for name, _ in FEATURES])))
    op.execute(_devices.delete().where(_devices.c.name.in_(DEVICES)))
    op.execute(_sites.delete().where(_sites.c.name.in_(SITES)))
