"""Create newsletter tables (api_users, newsletter_contacts, newsletter_campaigns, newsletter_events)

Revision ID: 000_create_newsletter_tables
Revises:
Create Date: 2026-10-19

Idempotent: tables created by init_db() at startup are left alone.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '000_create_newsletter_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(conn, table_name):
    """Check if a table exists in the database."""
    return sa.inspect(conn).has_table(table_name)


def upgrade():
    """Create newsletter tables."""
    conn = op.get_bind()

    if not table_exists(conn, 'api_users'):
        op.create_table(
            'api_users',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('email', sa.String(255), unique=True, index=True, nullable=False),
            sa.Column('hashed_password', sa.String(255), nullable=False),
            sa.Column('first_name', sa.String(100)),
            sa.Column('last_name', sa.String(100)),
            sa.Column('is_active', sa.Boolean(), default=True),
            sa.Column('is_superuser', sa.Boolean(), default=False),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('last_login_at', sa.DateTime(timezone=True)),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'newsletter_contacts'):
        op.create_table(
            'newsletter_contacts',
            sa.Column('id', sa.UUID(), primary_key=True, index=True),
            sa.Column('email', sa.String(255), unique=True, index=True, nullable=False),
            sa.Column('first_name', sa.String(100)),
            sa.Column('last_name', sa.String(100)),
            # pending | confirmed | unsubscribed | bounced | spam
            sa.Column('status', sa.String(20), nullable=False, server_default='pending', index=True),
            sa.Column('confirm_token', sa.String(64), unique=True),
            sa.Column('unsubscribe_token', sa.String(64), unique=True),
            sa.Column('tags', sa.JSON()),
            sa.Column('subscribed_ip', sa.String(45)),
            sa.Column('subscribed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('confirmed_at', sa.DateTime(timezone=True)),
            sa.Column('unsubscribed_at', sa.DateTime(timezone=True)),
            sa.Column('last_email_sent_at', sa.DateTime(timezone=True)),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'newsletter_campaigns'):
        op.create_table(
            'newsletter_campaigns',
            sa.Column('id', sa.UUID(), primary_key=True, index=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('subject', sa.String(255), nullable=False),
            sa.Column('preheader', sa.String(255)),
            sa.Column('html_content', sa.Text(), nullable=False),
            sa.Column('tags', sa.JSON()),
            # draft | scheduled | sending | sent
            sa.Column('status', sa.String(20), nullable=False, server_default='draft', index=True),
            sa.Column('scheduled_for', sa.DateTime(timezone=True)),
            sa.Column('sent_at', sa.DateTime(timezone=True)),
            sa.Column('total_recipients', sa.Integer(), server_default='0'),
            sa.Column('total_sent', sa.Integer(), server_default='0'),
            sa.Column('total_opened', sa.Integer(), server_default='0'),
            sa.Column('total_clicked', sa.Integer(), server_default='0'),
            sa.Column('total_bounced', sa.Integer(), server_default='0'),
            sa.Column('created_by', sa.Integer(), sa.ForeignKey('api_users.id', ondelete='SET NULL')),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'newsletter_events'):
        op.create_table(
            'newsletter_events',
            sa.Column('id', sa.UUID(), primary_key=True, index=True),
            sa.Column(
                'campaign_id',
                sa.UUID(),
                sa.ForeignKey('newsletter_campaigns.id', ondelete='CASCADE'),
                nullable=True,
                index=True,
            ),
            sa.Column(
                'contact_id',
                sa.UUID(),
                sa.ForeignKey('newsletter_contacts.id', ondelete='CASCADE'),
                nullable=False,
                index=True,
            ),
            # sent | opened | bounced | unsubscribe | spam
            sa.Column('event_type', sa.String(20), nullable=False, index=True),
            sa.Column('metadata', sa.JSON()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        )


def downgrade():
    """Drop newsletter tables."""
    op.drop_table('newsletter_events')
    op.drop_table('newsletter_campaigns')
    op.drop_table('newsletter_contacts')
    op.drop_table('api_users')
