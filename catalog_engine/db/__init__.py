"""Database layer for Supplier Catalog Engine."""

from .models import ApiLogDB, Base, JobDB, JobItemDB, PricingRuleDB
from .repository import Repository, StaleJobError
from .session import get_engine, get_session, init_database

__all__ = [
    "Base",
    "JobDB",
    "JobItemDB",
    "PricingRuleDB",
    "ApiLogDB",
    "Repository",
    "StaleJobError",
    "get_engine",
    "get_session",
    "init_database",
]
