"""SQLAlchemy models package."""

from tasksearch.models.task import Project, Task, TaskEmbedding, Tenant

__all__ = ["Project", "Task", "TaskEmbedding", "Tenant"]
