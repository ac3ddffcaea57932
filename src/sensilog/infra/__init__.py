"""
SensiLog Infrastructure - Persistence components.

This module contains:
- database: SQLAlchemy models and the DatabaseManager
- job_store: Database-backed sync job tracking
"""

__all__: list[str] = []
