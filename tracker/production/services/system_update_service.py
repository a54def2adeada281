import json
from datetime import timedelta
from typing import Callable, Iterable, List, Optional

from tracker.datetime_utils import format_timestamp, parse_timestamp, utcnow
from tracker.errors import EventLogAppendFailed, InvalidInput
from tracker.logging_config import get_logger
from tracker.models import SystemUpdate, UpdateType

logger = get_logger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


def serialize_update(record: SystemUpdate) -> dict:
    """
    Wire form of a system update.

    The stored data column is JSON text; a row that fails to parse keeps its raw
    text so one bad payload never hides the rest of a batch.
    """
    try:
        data = json.loads(record.data)
    except (TypeError, ValueError):
        logger.warning(
            "System update payload is not valid JSON, returning raw text",
            update_id=record.id,
            entity_type=record.entity_type,
        )
        data = record.data
    return {
        "id": record.id,
        "type": record.update_type,
        "entityType": record.entity_type,
        "entityId": record.entity_id,
        "data": data,
        "createdBy": record.created_by,
        "createdAt": format_timestamp(record.created_at),
    }


class SystemUpdateService:
    """Append/read access to the system update log.

    Subscribers are callables taking the serialized record; they run after the
    record is durably written.
    """

    def __init__(self, store, subscribers: Iterable[Callable[[dict], None]] = (),
                 default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
        self.store = store
        self.subscribers = list(subscribers)
        self.default_limit = default_limit
        self.max_limit = max_limit

    def append(self, update_type: UpdateType, entity_type: str, entity_id: str,
               data: dict, created_by: Optional[str] = None) -> Optional[SystemUpdate]:
        """
        Append one record for a state change that has already been persisted.

        Append failures are logged and swallowed: the state change is authoritative
        even when observers miss the event.

        Returns:
            SystemUpdate if written, None if the append failed
        """
        record = SystemUpdate(
            update_type=update_type.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            data=json.dumps(data, default=str),
            created_by=created_by,
        )
        try:
            self.store.append_event_log(record)
        except EventLogAppendFailed as exc:
            logger.error(
                "System update append failed",
                error_type=type(exc).__name__,
                update_type=update_type.value,
                entity_type=entity_type,
                entity_id=str(entity_id),
                error=str(exc),
            )
            return None

        logger.info(
            "System update appended",
            update_id=record.id,
            update_type=record.update_type,
            entity_type=entity_type,
            entity_id=record.entity_id,
        )
        self._notify(record)
        return record

    def _notify(self, record: SystemUpdate) -> None:
        if not self.subscribers:
            return
        payload = serialize_update(record)
        for subscriber in self.subscribers:
            try:
                subscriber(payload)
            except Exception as exc:
                logger.error(
                    "System update subscriber failed",
                    subscriber=getattr(subscriber, "__name__", repr(subscriber)),
                    update_id=record.id,
                    error=str(exc),
                    exc_info=True,
                )

    def resolve_limit(self, limit) -> int:
        if limit is None:
            return self.default_limit
        try:
            value = int(limit)
        except (TypeError, ValueError):
            raise InvalidInput("limit must be a positive integer")
        if value < 1:
            raise InvalidInput("limit must be a positive integer")
        return min(value, self.max_limit)

    def list_since(self, since, limit=None) -> List[dict]:
        """
        Records created strictly after `since`, newest first.

        Args:
            since: datetime or ISO-8601 string
            limit: max records (defaults to the configured default, capped at max)
        """
        try:
            timestamp = parse_timestamp(since)
        except ValueError:
            raise InvalidInput(f"since must be an ISO-8601 timestamp, got {since!r}")
        records = self.store.list_event_log_since(timestamp, self.resolve_limit(limit))
        return [serialize_update(record) for record in records]

    @staticmethod
    def default_since(lookback_hours: int):
        return utcnow() - timedelta(hours=lookback_hours)
