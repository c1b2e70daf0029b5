"""Services package."""

from tasksearch.services.embedding import EmbeddingService, get_embedding_service
from tasksearch.services.tenant_timezone import TenantTimezoneService

__all__ = ["EmbeddingService", "TenantTimezoneService", "get_embedding_service"]
