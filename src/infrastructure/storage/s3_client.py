"""
S3 object storage client.

Infrastructure layer for S3-compatible storage using boto3.
"""

from pathlib import Path
from typing import Optional, Dict
import logging

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.client import Config
from botocore.exceptions import ClientError, BotoCoreError

from domain.models import ObjectRef, ObjectHead
from domain.exceptions import TransientInfraError

NOT_FOUND_CODES = ('404', 'NoSuchKey', 'NotFound')


class S3ObjectStorage:
    """
    Object storage backed by S3 (or any S3-compatible endpoint).
    Implements IObjectStorage protocol.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        client=None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize storage client.

        Args:
            region: AWS region
            endpoint_url: Optional S3-compatible endpoint (MinIO, B2, ...)
            client: Pre-built boto3 S3 client
            logger: Logger instance
        """
        self.region = region
        self.endpoint_url = endpoint_url
        self.logger = logger or logging.getLogger(__name__)
        self._client = client or self._create_client()

        self._transfer_config = TransferConfig(
            multipart_threshold=50 * 1024 * 1024,  # 50MB
            multipart_chunksize=50 * 1024 * 1024,
            max_concurrency=4,
            use_threads=True
        )

    def _create_client(self):
        config = Config(
            signature_version='s3v4',
            retries={'max_attempts': 3, 'mode': 'standard'}
        )
        kwargs = {'region_name': self.region, 'config': config}
        if self.endpoint_url:
            kwargs['endpoint_url'] = self.endpoint_url
        return boto3.client('s3', **kwargs)

    def head(self, ref: ObjectRef) -> ObjectHead:
        """Fetch object metadata."""
        try:
            response = self._client.head_object(Bucket=ref.bucket, Key=ref.key)
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"HEAD s3://{ref} failed: {e}") from e

        return ObjectHead(
            ref=ref,
            metadata=dict(response.get('Metadata') or {}),
            content_type=response.get('ContentType'),
            content_length=int(response.get('ContentLength') or 0),
            etag=(response.get('ETag') or '').strip('"') or None
        )

    def download(self, ref: ObjectRef, destination: Path) -> Path:
        """Download object to a local path."""
        self.logger.info(f"Downloading s3://{ref} -> {destination}")
        destination.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._client.download_file(
                ref.bucket,
                ref.key,
                str(destination),
                Config=self._transfer_config
            )
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"Download of s3://{ref} failed: {e}") from e

        return destination

    def upload(
        self,
        local_path: Path,
        ref: ObjectRef,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> ObjectRef:
        """Upload a local file."""
        if not local_path.exists():
            raise FileNotFoundError(f"File not found: {local_path}")

        extra = {}
        if content_type:
            extra['ContentType'] = content_type
        if metadata:
            extra['Metadata'] = metadata

        self.logger.info(f"Uploading {local_path} ({local_path.stat().st_size} bytes) -> s3://{ref}")
        try:
            self._client.upload_file(
                str(local_path),
                ref.bucket,
                ref.key,
                ExtraArgs=extra or None,
                Config=self._transfer_config
            )
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"Upload to s3://{ref} failed: {e}") from e

        return ref

    def delete(self, ref: ObjectRef) -> None:
        """Delete an object."""
        try:
            self._client.delete_object(Bucket=ref.bucket, Key=ref.key)
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"Delete of s3://{ref} failed: {e}") from e
        self.logger.debug(f"Deleted s3://{ref}")

    def exists(self, ref: ObjectRef) -> bool:
        """Check if object exists."""
        try:
            self._client.head_object(Bucket=ref.bucket, Key=ref.key)
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in NOT_FOUND_CODES:
                return False
            raise TransientInfraError(f"HEAD s3://{ref} failed: {e}") from e

    def public_url(self, ref: ObjectRef) -> Optional[str]:
        """Virtual-hosted HTTPS URL of an object."""
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{ref.bucket}/{ref.key}"
        return f"https://{ref.bucket}.s3.{self.region}.amazonaws.com/{ref.key}"
