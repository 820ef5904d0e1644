"""Durable, public-read persistence of processed images in S3."""

from typing import List

from ..core.error_handling import storage_error_from
from ..core.exceptions import StorageError
from ..core.logging_config import get_logger
from ..core.models import StoredAsset
from ..core.protocols import S3ClientProtocol


class StorageWriter:
    """Writes event images under ``{key_prefix}/{event_id}/images/``."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        bucket: str,
        public_base_url: str,
        key_prefix: str = "events/shared",
        cache_control: str = "max-age=31536000",
    ):
        self._s3_client = s3_client
        self._bucket = bucket
        self._public_base_url = public_base_url.rstrip("/")
        self._key_prefix = key_prefix.strip("/")
        self._cache_control = cache_control
        self._logger = get_logger("storage")

    def images_prefix(self, event_id: str) -> str:
        return f"{self._key_prefix}/{event_id}/images/"

    def key_for(self, event_id: str, file_name: str) -> str:
        return f"{self.images_prefix(event_id)}{file_name}"

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    async def write(
        self,
        event_id: str,
        file_name: str,
        data: bytes,
        content_type: str,
        original_size: int,
    ) -> StoredAsset:
        key = self.key_for(event_id, file_name)
        self._logger.debug(f"Uploading to s3://{self._bucket}/{key}")
        try:
            await self._s3_client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="public-read",
                CacheControl=self._cache_control,
            )
        except StorageError:
            raise
        except Exception as e:
            raise storage_error_from(e, "put_object") from e

        return StoredAsset(
            key=key,
            public_url=self.public_url(key),
            original_size=original_size,
            processed_size=len(data),
        )

    async def list_names(self, event_id: str) -> List[str]:
        """Base names of every object already stored for the event."""
        prefix = self.images_prefix(event_id)
        names: List[str] = []
        try:
            paginator = self._s3_client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    if key.endswith("/"):
                        continue
                    names.append(key[len(prefix):] if key.startswith(prefix) else key.rsplit("/", 1)[-1])
        except StorageError:
            raise
        except Exception as e:
            raise storage_error_from(e, "list_objects_v2") from e

        self._logger.info(f"Found {len(names)} existing object(s) in s3://{self._bucket}/{prefix}")
        return names
