"""Initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create restaurants table
    op.create_table(
        'restaurants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
        sa.Column('opening_time', sa.String(), nullable=True),
        sa.Column('closing_time', sa.String(), nullable=True),
        sa.Column('closed_days', sa.JSON(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('handoff_phone_number', sa.String(), nullable=True),
        sa.Column('subscription_status', sa.String(), nullable=False),
        sa.Column('calls_limit', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_restaurants_id'), 'restaurants', ['id'], unique=False)

    # Create call_logs table
    op.create_table(
        'call_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('restaurant_id', sa.String(), nullable=False),
        sa.Column('stream_sid', sa.String(), nullable=True),
        sa.Column('call_sid', sa.String(), nullable=True),
        sa.Column('caller_phone', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_logs_id'), 'call_logs', ['id'], unique=False)
    op.create_index(op.f('ix_call_logs_restaurant_id'), 'call_logs', ['restaurant_id'], unique=False)
    op.create_index(op.f('ix_call_logs_stream_sid'), 'call_logs', ['stream_sid'], unique=False)
    op.create_index(op.f('ix_call_logs_call_sid'), 'call_logs', ['call_sid'], unique=False)

    # Create call_transcripts table
    op.create_table(
        'call_transcripts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('call_log_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['call_log_id'], ['call_logs.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_transcripts_id'), 'call_transcripts', ['id'], unique=False)
    op.create_index(op.f('ix_call_transcripts_call_log_id'), 'call_transcripts', ['call_log_id'], unique=False)

    # Create reservations table
    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('restaurant_id', sa.String(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.String(), nullable=False),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reservations_id'), 'reservations', ['id'], unique=False)
    op.create_index(op.f('ix_reservations_restaurant_id'), 'reservations', ['restaurant_id'], unique=False)
    op.create_index(op.f('ix_reservations_date'), 'reservations', ['date'], unique=False)


def downgrade() -> None:
    op.drop_table('reservations')
    op.drop_table('call_transcripts')
    op.drop_table('call_logs')
    op.drop_table('restaurants')
