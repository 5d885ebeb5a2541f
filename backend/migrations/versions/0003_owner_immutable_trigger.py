"""Reject owner changes on content rows at the database level."""
from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "0003_owner_immutable_trigger"
down_revision = "0002_create_media_tables"
branch_labels = None
depends_on = None

CONTENT_TABLES = ("videos", "images")


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_owner_change() RETURNS trigger AS $$
        BEGIN
            IF NEW.user_id IS DISTINCT FROM OLD.user_id THEN
                RAISE EXCEPTION 'Content owner cannot be reassigned';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    for table in CONTENT_TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_owner_immutable BEFORE UPDATE OF user_id ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION reject_owner_change()"
        )


def downgrade() -> None:
    for table in CONTENT_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_owner_immutable ON {table}")
    op.execute("DROP FUNCTION IF EXISTS reject_owner_change()")
