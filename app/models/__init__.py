"""
Database models package
"""

from .document import StoredDocument

__all__ = ["StoredDocument"]
