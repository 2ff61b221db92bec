"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

resource_kind = sa.Enum('TABLE', 'LANE', 'GAMING_BLOCK', name='resourcekind')
resource_status = sa.Enum('AVAILABLE', 'HELD', 'OCCUPIED', 'OUT_OF_SERVICE', name='resourcestatus')
reservation_status = sa.Enum(
    'PENDING', 'CONFIRMED', 'ARRIVED', 'COMPLETED', 'CANCELLED', 'NO_SHOW', name='reservationstatus'
)
source_system = sa.Enum('LINEUP', 'PHONE', 'WALK_IN', 'OPENTABLE', name='sourcesystem')
session_state = sa.Enum('ACTIVE', 'WARNING', 'EXPIRED', name='sessionstate')
extension_status = sa.Enum('REQUESTED', 'APPROVED', 'DENIED', 'EXPIRED', name='extensionstatus')
user_role = sa.Enum('SUPER_ADMIN', 'VENUE_ADMIN', 'STAFF', 'DINER', name='userrole')


def upgrade() -> None:
    # Create venues table
    op.create_table(
        'venues',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(50), default='America/New_York'),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('hours_json', sa.JSON()),
        sa.Column('seating_capacity', sa.Integer()),
        sa.Column('policies_json', sa.JSON()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create resources table
    op.create_table(
        'resources',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('venues.id'), nullable=False),
        sa.Column('kind', resource_kind, nullable=False),
        sa.Column('label', sa.String(100), nullable=False),
        sa.Column('number', sa.Integer()),
        sa.Column('capacity', sa.Integer()),
        sa.Column('block_minutes', sa.Integer()),
        sa.Column('status', resource_status, nullable=False, server_default='AVAILABLE'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('phone', sa.String(20)),
        sa.Column('role', user_role, server_default='DINER'),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create staff_memberships table
    op.create_table(
        'staff_memberships',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('venues.id'), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'venue_id', name='uq_staff_membership'),
    )

    # Create reservations table
    op.create_table(
        'reservations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('venues.id'), nullable=False),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('resources.id')),
        sa.Column('resource_kind', resource_kind, nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('status', reservation_status, nullable=False, server_default='PENDING'),
        sa.Column('source_system', source_system, nullable=False, server_default='LINEUP'),
        sa.Column('source_external_id', sa.String(100)),
        sa.Column('owner_id', sa.String(64)),
        sa.Column('guest_name', sa.String(255)),
        sa.Column('guest_phone', sa.String(20)),
        sa.Column('notes', sa.Text()),
        sa.Column('session_state', session_state),
        sa.Column('warning_sent_at', sa.DateTime()),
        sa.Column('reminder_sent_at', sa.DateTime()),
        sa.Column('cancelled_at', sa.DateTime()),
        sa.Column('cancelled_by', sa.String(64)),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('venue_id', 'source_system', 'source_external_id', name='uq_reservation_external'),
    )

    # Create extension_requests table
    op.create_table(
        'extension_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('reservation_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('reservations.id'), nullable=False),
        sa.Column('minutes', sa.Integer(), nullable=False),
        sa.Column('requested_by', sa.String(64), nullable=False),
        sa.Column('status', extension_status, nullable=False, server_default='REQUESTED'),
        sa.Column('decided_by', sa.String(64)),
        sa.Column('decision_reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('decided_at', sa.DateTime()),
    )

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('venues.id')),
        sa.Column('actor_id', sa.String(64)),
        sa.Column('actor_type', sa.String(50)),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(50)),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True)),
        sa.Column('data_json', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_resources_venue_id', 'resources', ['venue_id'])
    op.create_index('ix_staff_memberships_user_id', 'staff_memberships', ['user_id'])
    op.create_index('ix_staff_memberships_venue_id', 'staff_memberships', ['venue_id'])
    op.create_index('ix_reservations_venue_id', 'reservations', ['venue_id'])
    op.create_index('ix_reservations_resource_id', 'reservations', ['resource_id'])
    op.create_index('ix_reservations_start_at', 'reservations', ['start_at'])
    op.create_index('ix_reservations_owner_id', 'reservations', ['owner_id'])
    op.create_index('ix_extension_requests_reservation_id', 'extension_requests', ['reservation_id'])
    op.create_index('ix_audit_logs_venue_id', 'audit_logs', ['venue_id'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('extension_requests')
    op.drop_table('reservations')
    op.drop_table('staff_memberships')
    op.drop_table('users')
    op.drop_table('resources')
    op.drop_table('venues')

    bind = op.get_bind()
    for enum_type in (
        user_role,
        extension_status,
        session_state,
        source_system,
        reservation_status,
        resource_status,
        resource_kind,
    ):
        enum_type.drop(bind, checkfirst=True)
