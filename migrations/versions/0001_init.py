from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'records',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('artist', sa.String(200), nullable=False),
        sa.Column('album', sa.String(200), nullable=False),
        sa.Column('format', sa.String(20), nullable=False),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('qty', sa.Integer, nullable=False, server_default='0'),
        sa.Column('mbid', sa.String(36), nullable=True),
        sa.Column('track_list', sa.JSON, nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('artist', 'album', 'format', name='uq_records_artist_album_format'),
        sa.CheckConstraint('qty >= 0', name='ck_records_qty_non_negative'),
        sa.CheckConstraint('price > 0', name='ck_records_price_positive'),
    )
    op.create_index('ix_records_artist', 'records', ['artist'])
    op.create_index('ix_records_album', 'records', ['album'])
    op.create_index('ix_records_format', 'records', ['format'])
    op.create_index('ix_records_category', 'records', ['category'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('record_id', sa.Integer, sa.ForeignKey('records.id', ondelete='SET NULL'), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_orders_quantity_positive'),
    )
    op.create_index('ix_orders_record_id', 'orders', ['record_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_email', 'orders', ['email'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

def downgrade():
    op.drop_table('orders')
    op.drop_table('records')
