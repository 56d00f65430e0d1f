"""SQLAlchemy table definitions for the deployment store.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    DateTime,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Component Deployment Identifiers ===

deployment_ids_table = Table(
    "deployment_ids",
    metadata,
    Column("stream_name", String(255), nullable=False),
    Column("label", String(255), nullable=False),
    Column("deployment_id", String(512), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint("stream_name", "label"),
)

# === Stream Deployments ===

stream_deployments_table = Table(
    "stream_deployments",
    metadata,
    Column("stream_name", String(255), primary_key=True),
    Column("backend", String(32), nullable=False),
    Column("properties_json", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
