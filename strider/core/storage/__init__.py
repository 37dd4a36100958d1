"""
Durable on-disk records (atomic writes, backups, corruption recovery).
"""

from strider.core.storage.io import ReadResult, RecordPaths, atomic_write_json, read_json_file, recover_from_corrupt

__all__ = ["ReadResult", "RecordPaths", "atomic_write_json", "read_json_file", "recover_from_corrupt"]
