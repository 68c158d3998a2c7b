"""
Storage Module
Durable tables for trends, jobs, shorts, metrics and config.
"""
from .database import Database, create_db_engine
from .pipeline_store import PipelineStore, utcnow

__all__ = [
    "Database",
    "PipelineStore",
    "create_db_engine",
    "utcnow",
]
