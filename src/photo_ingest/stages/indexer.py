"""Face indexing of stored assets into per-event Rekognition collections."""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from botocore.exceptions import ClientError as BotocoreClientError

from ..core.error_handling import (
    INDEX_RETRY_POLICY,
    RetryPolicy,
    client_error_code,
    is_rate_limit_error,
    retry_async,
)
from ..core.exceptions import IndexingError, SystemicError
from ..core.filenames import external_image_id
from ..core.logging_config import get_logger
from ..core.models import IndexBatchResult, IndexOutcome
from ..core.protocols import RekognitionClientProtocol

IndexProgressCallback = Callable[[int, int, str], None]


class FaceIndexer:
    """
    Wraps the recognition service for one bucket.

    Per-item failures are reported as ``IndexOutcome(indexed=False)`` and
    never raised: the asset is already stored, only face search degrades.
    Only collection setup failures raise, as ``SystemicError``.
    """

    def __init__(
        self,
        client: RekognitionClientProtocol,
        bucket: str,
        collection_prefix: str = "event-",
        max_faces: int = 10,
        quality_filter: str = "AUTO",
        retry_policy: RetryPolicy = INDEX_RETRY_POLICY,
        chunk_size: int = 10,
        chunk_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._bucket = bucket
        self._collection_prefix = collection_prefix
        self._max_faces = max_faces
        self._quality_filter = quality_filter
        self._retry_policy = retry_policy
        self._chunk_size = chunk_size
        self._chunk_delay = chunk_delay
        self._sleep = sleep
        self._logger = get_logger("indexer")

    def collection_id(self, event_id: str) -> str:
        return f"{self._collection_prefix}{event_id}"

    async def ensure_collection(self, event_id: str) -> str:
        """Create the event's collection; an existing one counts as success."""
        collection_id = self.collection_id(event_id)
        try:
            await self._client.create_collection(CollectionId=collection_id)
            self._logger.info(f"Created face collection {collection_id}")
        except BotocoreClientError as e:
            if client_error_code(e) == "ResourceAlreadyExistsException":
                self._logger.debug(f"Face collection {collection_id} already exists")
                return collection_id
            raise SystemicError(f"Cannot create face collection {collection_id}: {e}") from e
        except Exception as e:
            raise SystemicError(f"Recognition service unreachable for {collection_id}: {e!r}") from e
        return collection_id

    async def _index_once(self, collection_id: str, key: str, external_id: str) -> List[str]:
        try:
            response = await self._client.index_faces(
                CollectionId=collection_id,
                Image={"S3Object": {"Bucket": self._bucket, "Name": key}},
                ExternalImageId=external_id,
                DetectionAttributes=["ALL"],
                MaxFaces=self._max_faces,
                QualityFilter=self._quality_filter,
            )
        except Exception as e:
            raise IndexingError(
                f"Failed to index faces for {key}: {e}",
                retryable=is_rate_limit_error(e),
                code=client_error_code(e),
            ) from e
        return [
            record["Face"]["FaceId"]
            for record in response.get("FaceRecords", [])
            if record.get("Face", {}).get("FaceId")
        ]

    async def index_asset(self, event_id: str, key: str, external_id: str) -> IndexOutcome:
        """Index one stored asset, retrying only on rate-limit errors."""
        collection_id = self.collection_id(event_id)
        try:
            face_ids, attempts = await retry_async(
                lambda: self._index_once(collection_id, key, external_id),
                self._retry_policy,
                should_retry=is_rate_limit_error,
                description=f"index_faces {key}",
                sleep=self._sleep,
            )
        except IndexingError as e:
            self._logger.error(f"Failed to index faces for {key}: {e}")
            return IndexOutcome(
                key=key, indexed=False, reason=str(e), attempts=getattr(e, "attempts", 1)
            )

        self._logger.debug(f"Indexed {len(face_ids)} face(s) for {key}")
        return IndexOutcome(key=key, indexed=True, face_ids=face_ids, attempts=attempts)

    async def index_batch(
        self,
        event_id: str,
        keys: Sequence[str],
        on_progress: Optional[IndexProgressCallback] = None,
    ) -> IndexBatchResult:
        """
        Index many stored assets in fixed-size chunks.

        Chunks run one after another with ``chunk_delay`` seconds between
        them to stay under the service's throughput limit.

        Raises:
            SystemicError: If the collection cannot be set up
        """
        await self.ensure_collection(event_id)

        result = IndexBatchResult()
        total = len(keys)
        done = 0
        for start in range(0, total, self._chunk_size):
            if start > 0 and self._chunk_delay > 0:
                await self._sleep(self._chunk_delay)
            chunk = keys[start:start + self._chunk_size]
            self._logger.info(
                f"Indexing chunk {start // self._chunk_size + 1}/"
                f"{(total + self._chunk_size - 1) // self._chunk_size} ({len(chunk)} item(s))"
            )
            outcomes = await asyncio.gather(
                *(
                    self.index_asset(event_id, key, external_image_id(key.rsplit("/", 1)[-1]))
                    for key in chunk
                )
            )
            for outcome in outcomes:
                if outcome.indexed:
                    result.succeeded.append(outcome)
                else:
                    result.failed.append(outcome)
                done += 1
                if on_progress is not None:
                    on_progress(done, total, outcome.key)

        self._logger.info(
            f"Indexed {len(result.succeeded)}/{total} asset(s) for event {event_id}, "
            f"{len(result.failed)} failed"
        )
        return result
