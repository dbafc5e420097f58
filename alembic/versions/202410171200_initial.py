"""initial schema

Revision ID: 202410171200
Revises:
Create Date: 2024-10-17 12:00:00.000000

"""

from datetime import datetime

from alembic import op
import sqlalchemy as sa


revision = "202410171200"
down_revision = None
branch_labels = None
depends_on = None


DEFAULT_CATEGORIES = (
    "Food",
    "Transport",
    "Housing",
    "Utilities",
    "Entertainment",
    "Health",
    "Shopping",
    "Education",
    "Travel",
    "Other",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False),
        *_timestamps(),
    )

    roles = op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=100), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "client_id",
            sa.Integer(),
            sa.ForeignKey("clients.id"),
            nullable=False,
            unique=True,
        ),
        *_timestamps(),
    )

    op.create_table(
        "users_roles",
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column(
            "role_id", sa.Integer(), sa.ForeignKey("roles.id"), primary_key=True
        ),
    )

    categories = op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("date_time", sa.String(length=19), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column(
            "client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False
        ),
        *_timestamps(),
    )
    op.create_index(
        "ix_expenses_client_date", "expenses", ["client_id", "date_time"]
    )
    op.create_index(
        "ix_expenses_client_category", "expenses", ["client_id", "category_id"]
    )

    now = datetime.utcnow()
    op.bulk_insert(
        roles, [{"name": "ROLE_STANDARD", "created_at": now, "updated_at": now}]
    )
    op.bulk_insert(
        categories,
        [
            {"name": name, "created_at": now, "updated_at": now}
            for name in DEFAULT_CATEGORIES
        ],
    )


def downgrade():
    op.drop_index("ix_expenses_client_category", table_name="expenses")
    op.drop_index("ix_expenses_client_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("categories")
    op.drop_table("users_roles")
    op.drop_table("users")
    op.drop_table("roles")
    op.drop_table("clients")
