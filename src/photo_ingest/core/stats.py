"""Event statistics: display units and the DynamoDB-backed sink."""

from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .error_handling import with_error_handling
from .logging_config import get_logger
from .models import DisplaySize, EventStatsDelta
from .protocols import DynamoDBClientProtocol

MB = 1024 * 1024
GB = MB * 1024


def to_display_size(num_bytes: int) -> DisplaySize:
    """Express a byte count in MB, switching to GB from 1024 MB upward."""
    mb = round(num_bytes / MB, 2)
    if mb >= 1024:
        return DisplaySize(size=round(num_bytes / GB, 2), unit="GB")
    return DisplaySize(size=mb, unit="MB")


class DynamoEventDirectory:
    """Event and user lookups against the ``Events`` and ``Users`` tables."""

    def __init__(
        self,
        client: DynamoDBClientProtocol,
        events_table: str = "Events",
        users_table: str = "Users",
    ):
        self._client = client
        self._events_table = events_table
        self._users_table = users_table
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    async def _get(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = await self._client.get_item(
            TableName=table,
            Key={k: self._serializer.serialize(v) for k, v in key.items()},
        )
        item = response.get("Item")
        if not item:
            return None
        return {k: self._deserializer.deserialize(v) for k, v in item.items()}

    @with_error_handling
    async def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        return await self._get(self._events_table, {"eventId": event_id})

    @with_error_handling
    async def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._get(self._users_table, {"email": email})


class DynamoStatsSink:
    """Adds a batch's photo count and stores its sizes in display units."""

    def __init__(self, client: DynamoDBClientProtocol, events_table: str = "Events"):
        self._client = client
        self._events_table = events_table
        self._serializer = TypeSerializer()
        self._logger = get_logger("stats")

    @with_error_handling
    async def update_event_stats(self, event_id: str, delta: EventStatsDelta) -> None:
        original = to_display_size(delta.original_bytes_delta)
        compressed = to_display_size(delta.compressed_bytes_delta)
        values = {
            ":pc": delta.photo_count_delta,
            ":tis": Decimal(str(original.size)),
            ":tisUnit": original.unit,
            ":tcs": Decimal(str(compressed.size)),
            ":tcsUnit": compressed.unit,
        }
        await self._client.update_item(
            TableName=self._events_table,
            Key={"eventId": self._serializer.serialize(event_id)},
            UpdateExpression=(
                "ADD photoCount :pc SET totalImageSize = :tis, "
                "totalImageSizeUnit = :tisUnit, totalCompressedSize = :tcs, "
                "totalCompressedSizeUnit = :tcsUnit"
            ),
            ExpressionAttributeValues={
                k: self._serializer.serialize(v) for k, v in values.items()
            },
        )
        self._logger.info(
            f"Updated event {event_id} stats: +{delta.photo_count_delta} photos, "
            f"{original.size} {original.unit} original, "
            f"{compressed.size} {compressed.unit} compressed"
        )
