"""
ChoreCal API Routers
"""
from chorecal.api import cron, health, integrations

__all__ = ["cron", "health", "integrations"]
