"""Read-only mappings of the task store and its embedding table.

These tables are owned and migrated by the task service; search only reads
them.
"""

from datetime import date, datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tasksearch.config import get_settings
from tasksearch.db.base import Base, TimestampMixin


class Tenant(Base):
    """Tenant (workspace) owning projects and tasks."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Project(Base, TimestampMixin):
    """Project grouping tasks within a tenant."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Task(Base, TimestampMixin):
    """Task tracked within a tenant, optionally inside a project."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id"), nullable=False, index=True
    )
    project_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("projects.id"), nullable=True, index=True
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # TODO, IN_PROGRESS, IN_REVIEW, BLOCKED, DONE, CANCELLED
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="TODO")
    # LOW, MEDIUM, HIGH, URGENT
    priority: Mapped[str] = mapped_column(String(32), nullable=False, default="MEDIUM")

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class TaskEmbedding(Base):
    """Vector embedding of a task's text, scoped to the task's tenant."""

    __tablename__ = "task_embeddings"

    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(get_settings().embedding_dimensions),
        nullable=False,
    )
    # Query vectors are only comparable with rows embedded by the same model
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    embedded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
