"""
Database package for the EduSync assessment service.
"""

from edusync.database.base import Base, ModelBase, metadata

__all__ = ["Base", "ModelBase", "metadata"]
