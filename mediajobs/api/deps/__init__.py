"""API-specific dependencies."""

# Re-export common dependencies
from .auth import get_current_principal, require_admin
from .dependencies import (
    get_job_query_service,
    get_lifecycle_manager,
    get_service_cache,
    get_settings_dependency,
    get_storage,
)

__all__ = [
    "get_current_principal",
    "get_job_query_service",
    "get_lifecycle_manager",
    "get_service_cache",
    "get_settings_dependency",
    "get_storage",
    "require_admin",
]
