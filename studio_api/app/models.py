"""
Table definitions for the tables the API reads and writes.

Only the columns the API relies on are load-bearing; the rest mirror the
production schema so a local database looks like the real one.
"""

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Table,
    Text,
    text,
)

metadata = MetaData()

projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
    Column("client_name", Text),
    Column("contact_email", Text),
    Column("status", Text, server_default=text("'prospects'")),
    Column("notes", Text),
    Column("archived", Integer, server_default=text("0")),
    Column("created_at", Text, server_default=text("CURRENT_TIMESTAMP")),
    Column("updated_at", Text, server_default=text("CURRENT_TIMESTAMP")),
)

estimates = Table(
    "estimates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("runtime", Text),
    Column("music_minutes", Integer, server_default=text("0")),
    Column("dialogue_hours", Float, server_default=text("0")),
    Column("sound_design_hours", Float, server_default=text("0")),
    Column("mix_hours", Float, server_default=text("0")),
    Column("revision_hours", Float, server_default=text("0")),
    Column("post_days", Float, server_default=text("0")),
    Column("bundle_discount", Integer, server_default=text("0")),
    Column("music_cost", Float, server_default=text("0")),
    Column("post_cost", Float, server_default=text("0")),
    Column("discount_amount", Float, server_default=text("0")),
    Column("total_cost", Float, server_default=text("0")),
    Column("created_at", Text, server_default=text("CURRENT_TIMESTAMP")),
)

project_scope = Table(
    "project_scope",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("contact_email", Text),
    Column("music_minutes", Integer, server_default=text("0")),
    Column("dialogue_hours", Float, server_default=text("0")),
    Column("sound_design_hours", Float, server_default=text("0")),
    Column("mix_hours", Float, server_default=text("0")),
    Column("revision_hours", Float, server_default=text("0")),
    Column("created_at", Text, server_default=text("CURRENT_TIMESTAMP")),
    Column("updated_at", Text, server_default=text("CURRENT_TIMESTAMP")),
)
