"""initial edms schema

Revision ID: 3f9c1a7e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "3f9c1a7e2b40"
down_revision = None
branch_labels = None
depends_on = None

_ENUMS = {
    "userrole": ("admin", "user", "guest"),
    "documenttype": ("PL", "PR", "WI", "FM", "TD", "TR", "RC"),
    "documentstatus": ("draft", "review", "published", "archived", "disposed"),
    "securitylevel": ("public", "internal", "confidential", "restricted"),
    "permissiontype": ("read", "write", "approve", "admin"),
    "workflowdecision": ("approved", "rejected", "returned"),
    "auditoutcome": ("allowed", "denied", "success", "failure", "error"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # --- Enums ---
    for name, values in _ENUMS.items():
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- Users ---
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=120), nullable=False),
        sa.Column("role", _enum("userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_department", "users", ["department"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- Documents ---
    op.create_table(
        "documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_code", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", _enum("documenttype"), nullable=False),
        sa.Column("department", sa.String(length=120), nullable=False),
        sa.Column("status", _enum("documentstatus"), nullable=False),
        sa.Column("security_level", _enum("securitylevel"), nullable=False),
        sa.Column("author_id", sa.UUID(), nullable=False),
        sa.Column("reviewer_id", sa.UUID(), nullable=True),
        sa.Column("approver_id", sa.UUID(), nullable=True),
        sa.Column("review_cycle", sa.Integer(), nullable=False),
        sa.Column("retention_period", sa.Integer(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_review_date", sa.Date(), nullable=True),
        sa.Column("disposal_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_code", name="uq_documents_document_code"),
    )
    op.create_index("ix_documents_author_id", "documents", ["author_id"])
    op.create_index("ix_documents_status", "documents", ["status"])
    op.create_index("ix_documents_department", "documents", ["department"])

    # --- Document permissions ---
    op.create_table(
        "document_permissions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("permission_type", _enum("permissiontype"), nullable=False),
        sa.Column("granted_by", sa.UUID(), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("revoked_by", sa.UUID(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (department IS NULL)",
            name="ck_document_permissions_single_target",
        ),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["granted_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["revoked_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_document_permissions_document_id", "document_permissions", ["document_id"]
    )
    op.create_index("ix_document_permissions_user_id", "document_permissions", ["user_id"])
    op.create_index(
        "ix_document_permissions_department", "document_permissions", ["department"]
    )

    # --- Workflow transitions ---
    op.create_table(
        "workflow_transitions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("from_status", _enum("documentstatus"), nullable=False),
        sa.Column("to_status", _enum("documentstatus"), nullable=False),
        sa.Column("decision", _enum("workflowdecision"), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("transitioned_by", sa.UUID(), nullable=False),
        sa.Column("transitioned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("session_id", sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["transitioned_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_workflow_transitions_document_id", "workflow_transitions", ["document_id"]
    )
    op.create_index(
        "ix_workflow_transitions_transitioned_by",
        "workflow_transitions",
        ["transitioned_by"],
    )

    # --- Audit events ---
    op.create_table(
        "audit_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("resource_type", sa.String(length=64), nullable=False),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("outcome", _enum("auditoutcome"), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("session_id", sa.String(length=128), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    op.create_index(
        "ix_audit_events_resource", "audit_events", ["resource_type", "resource_id"]
    )
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("workflow_transitions")
    op.drop_table("document_permissions")
    op.drop_table("documents")
    op.drop_table("users")
    for name in reversed(list(_ENUMS)):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
