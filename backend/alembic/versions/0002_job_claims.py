"""validation job claims

Revision ID: 0002_job_claims
Revises: 0001_init
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_job_claims"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("email_validation_jobs") as batch:
        batch.add_column(sa.Column("claimed_by", sa.String(36), nullable=True))


def downgrade():
    with op.batch_alter_table("email_validation_jobs") as batch:
        batch.drop_column("claimed_by")
