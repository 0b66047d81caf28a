"""Storage infrastructure."""

from infrastructure.storage.s3_client import S3ObjectStorage
from infrastructure.storage.local_storage import LocalObjectStorage
from infrastructure.storage.temp_storage import TempStorage

__all__ = ['S3ObjectStorage', 'LocalObjectStorage', 'TempStorage']
