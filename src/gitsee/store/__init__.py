"""
Durable result storage.
"""

from .file_store import ResultStore, is_record_fresh, storage_dir_name

__all__ = ["ResultStore", "is_record_fresh", "storage_dir_name"]
