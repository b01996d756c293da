"""
Remote replication of the local archive to AWS S3.

Files are selected with ordered include/exclude filters, the same way
`aws s3 cp --recursive --exclude ... --include ...` selects them: every file
starts included and the last matching filter decides.
"""

import os
import logging
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Sequence
from urllib.parse import urlparse

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError, BotoCoreError


logger = logging.getLogger(__name__)

# Only repository backups and configuration exports leave the host
DEFAULT_FILTERS = (
    ('exclude', '*'),
    ('include', '*.tsbak'),
    ('include', '*.json'),
)

# Use multipart upload for files larger than 100MB, in 64MB parts
TRANSFER_CONFIG = TransferConfig(
    multipart_threshold=100 * 1024 * 1024,
    multipart_chunksize=64 * 1024 * 1024,
)


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


@dataclass
class SyncResult:
    uploaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def parse_s3_url(url: str) -> Tuple[str, str]:
    """
    Split an s3:// URL into bucket and key prefix.

    Args:
        url: e.g. s3://my-bucket/tableau-backups/

    Returns:
        (bucket, prefix) where a non-empty prefix always ends with '/'

    Raises:
        StorageError: If the URL is not an s3:// URL with a bucket
    """
    parsed = urlparse(url)
    if parsed.scheme != 's3' or not parsed.netloc:
        raise StorageError(f"Invalid S3 destination: {url!r}")

    prefix = parsed.path.lstrip('/')
    if prefix and not prefix.endswith('/'):
        prefix += '/'

    return parsed.netloc, prefix


def is_selected(relative_path: str, filters: Sequence[Tuple[str, str]]) -> bool:
    """
    Apply ordered include/exclude filters to a relative path.

    Args:
        relative_path: POSIX path relative to the synced directory
        filters: ('include' | 'exclude', glob) pairs; later pairs win

    Returns:
        True if the file should be uploaded
    """
    selected = True
    for action, pattern in filters:
        if fnmatch(relative_path, pattern):
            selected = action == 'include'
    return selected


class S3Storage:
    """
    Handler for replicating backups to AWS S3.

    Objects are stored under the destination prefix with the file's path
    relative to the synced directory:
    {prefix}{relative_path}
    """

    def __init__(self, bucket_name: str, prefix: str = '', region: Optional[str] = None,
                 access_key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Initialize S3 storage handler.

        Credentials default to boto3's own chain (environment, shared
        config, instance profile) when no keys are given.

        Args:
            bucket_name: S3 bucket name
            prefix: Key prefix for every uploaded object
            region: AWS region (default: boto3's configured region)
            access_key: AWS access key ID
            secret_key: AWS secret access key
        """
        self.bucket_name = bucket_name
        self.prefix = prefix
        self.region = region

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region
            )
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_url(cls, url: str, region: Optional[str] = None, **kwargs) -> 'S3Storage':
        bucket_name, prefix = parse_s3_url(url)
        return cls(bucket_name, prefix=prefix, region=region, **kwargs)

    @property
    def destination(self) -> str:
        return f"s3://{self.bucket_name}/{self.prefix}"

    def sync_directory(self, local_dir: Path, filters: Sequence[Tuple[str, str]] = DEFAULT_FILTERS) -> SyncResult:
        """
        Upload selected files from a directory tree.

        Files already present in S3 with the same size are skipped.

        Args:
            local_dir: Directory to replicate (recursive)
            filters: Ordered include/exclude filters

        Returns:
            SyncResult with uploaded and skipped keys

        Raises:
            StorageError: If listing or any upload fails
        """
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            raise StorageError(f"Local directory not found: {local_dir}")

        existing = {obj['Key']: obj['Size'] for obj in self.list_objects(self.prefix)}
        result = SyncResult()

        for path in sorted(local_dir.rglob('*')):
            if not path.is_file():
                continue

            relative_path = path.relative_to(local_dir).as_posix()
            if not is_selected(relative_path, filters):
                continue

            s3_key = f"{self.prefix}{relative_path}"
            if existing.get(s3_key) == path.stat().st_size:
                result.skipped.append(s3_key)
                continue

            self.upload(str(path), s3_key)
            result.uploaded.append(s3_key)
            logger.info(f"Uploaded {path} to s3://{self.bucket_name}/{s3_key}")

        return result

    def upload(self, local_path: str, s3_key: str) -> str:
        """
        Upload a file to S3.

        Args:
            local_path: Path to local file
            s3_key: Destination object key

        Returns:
            S3 key of uploaded file

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        try:
            self.s3_client.upload_file(
                local_path,
                self.bucket_name,
                s3_key,
                Config=TRANSFER_CONFIG
            )
            return s3_key

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 upload failed: {e}")
        except Exception as e:
            raise StorageError(f"Failed to upload to S3: {e}")

    def list_objects(self, prefix: str) -> List[Dict]:
        """
        List objects in S3 with given prefix.

        Args:
            prefix: S3 key prefix to filter by

        Returns:
            List of dicts with 'Key', 'LastModified', and 'Size' keys

        Raises:
            StorageError: If listing fails
        """
        try:
            objects = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                if 'Contents' in page:
                    for obj in page['Contents']:
                        objects.append({
                            'Key': obj['Key'],
                            'LastModified': obj['LastModified'],
                            'Size': obj['Size']
                        })

            return objects

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except Exception as e:
            raise StorageError(f"Failed to list S3 objects: {e}")

    def test_connection(self) -> bool:
        """
        Test S3 connection and bucket access.

        Returns:
            True if connection is successful

        Raises:
            StorageError: If connection test fails
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == '404':
                raise StorageError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise StorageError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise StorageError(f"S3 connection test failed ({error_code}): {e}")
        except Exception as e:
            raise StorageError(f"Failed to connect to S3: {e}")
