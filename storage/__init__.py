"""
Article persistence.

Primary interface:
    from storage import open_store

    store = open_store(settings.storage)
    result = store.save(article)   # SaveResult.SAVED / DUPLICATE / FAILED
    store.close()
"""

from orchestrate.config import StorageConfig, validate_storage_config

from .backup import BackupRotator
from .jsonl import BatchResult, JsonlStore, SaveResult, StoreClosedError, StoreStats


__all__ = [
    'open_store',
    'validate_storage_config',
    'BackupRotator',
    'BatchResult',
    'JsonlStore',
    'SaveResult',
    'StoreClosedError',
    'StoreStats',
]


def open_store(config: StorageConfig) -> JsonlStore:
    """Validate the storage config and open the store it describes."""
    validate_storage_config(config)

    backup = None
    if config.backup_enabled:
        backup = BackupRotator(config.backup_directory, config.max_backup_files)

    return JsonlStore(config.output_file, backup=backup, fsync=config.fsync)
