from functools import lru_cache

from rentguard.core.settings import settings
from rentguard.services.storage.adapter import LocalFileSystemAdapter, StorageAdapter


@lru_cache(maxsize=1)
def get_storage_adapter() -> StorageAdapter:
    return LocalFileSystemAdapter(base_path=settings.local_upload_dir)
