"""Create pages and letters tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  `pages` holds one serialized PageDocument per row; `letters` records
       flattened pages sent to a recipient.

Rollback: downgrade() drops both tables (all pages and letters are lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "pages",
        sa.Column("id", sa.Uuid(), nullable=False, comment="Same value as the document id"),
        sa.Column(
            "book_id",
            sa.Uuid(),
            nullable=True,
            comment="Owning memory book; NULL for letter drafts",
        ),
        sa.Column("author_id", sa.Uuid(), nullable=True),
        sa.Column(
            "type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'memory'"),
            comment="letter | memory",
        ),
        sa.Column(
            "content_json",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            comment="Serialized PageDocument (camelCase keys, base64 blobs)",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_pages"),
        sa.CheckConstraint("type IN ('letter', 'memory')", name="ck_pages_type"),
    )
    op.create_index("idx_pages_book_id", "pages", ["book_id"])

    op.create_table(
        "letters",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("sender_id", sa.Uuid(), nullable=True),
        sa.Column("recipient_id", sa.Uuid(), nullable=False),
        sa.Column(
            "image_url",
            sa.String(255),
            nullable=False,
            comment="API path of the flattened JPEG",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_letters"),
    )
    op.create_index(
        "idx_letters_recipient_created",
        "letters",
        ["recipient_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_letters_recipient_created", table_name="letters")
    op.drop_table("letters")
    op.drop_index("idx_pages_book_id", table_name="pages")
    op.drop_table("pages")
