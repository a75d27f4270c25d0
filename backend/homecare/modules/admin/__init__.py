"""Admin module.

Platform-wide usage statistics for the admin dashboard.
"""

from homecare.modules.admin.router import router
from homecare.modules.admin.service import AdminUsageService, usage_stats_cache

__all__ = ["router", "AdminUsageService", "usage_stats_cache"]
