from alembic import op
import sqlalchemy as sa

revision = "0001_marketplace"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "identities",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("kind", sa.String(length=30), nullable=False, server_default="anonymous"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("identity_id", sa.String(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("token_prefix", sa.String(length=16), nullable=False),
        sa.Column("token_hash", sa.Text(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_session_tokens_identity_id", "session_tokens", ["identity_id"])
    op.create_index("ix_session_tokens_token_prefix", "session_tokens", ["token_prefix"])

    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("app_id", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.String(length=60), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=False, server_default="Unknown"),
        sa.Column("image_url", sa.Text(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_listings_app_category_price", "listings", ["app_id", "category", "price"])
    op.create_index("ix_listings_app_created_at", "listings", ["app_id", "created_at"])
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])

    op.create_table(
        "favorites",
        sa.Column("app_id", sa.String(length=120), primary_key=True),
        sa.Column("identity_id", sa.String(), primary_key=True),
        sa.Column("listing_ids", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade():
    op.drop_table("favorites")
    op.drop_index("ix_listings_owner_id", table_name="listings")
    op.drop_index("ix_listings_app_created_at", table_name="listings")
    op.drop_index("ix_listings_app_category_price", table_name="listings")
    op.drop_table("listings")
    op.drop_index("ix_session_tokens_token_prefix", table_name="session_tokens")
    op.drop_index("ix_session_tokens_identity_id", table_name="session_tokens")
    op.drop_table("session_tokens")
    op.drop_table("identities")
