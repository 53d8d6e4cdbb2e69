"""
Demo Data Ingestion Module
"""
from .seed_db import create_schema, seed_database, seed_dataset

__all__ = [
    "create_schema",
    "seed_database",
    "seed_dataset",
]
