"""
DynamoDB Streams entry point.

Parses a DynamoDB Streams batch (as delivered to a function trigger) into
change records and reports partial batch failures, so the stream only
retries the records that actually failed.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from internal.domain.change import ChangeKind, ChangeRecord
from internal.domain.errors import DomainValidationError, MalformedChangeRecordError
from internal.domain.product import Product
from internal.infrastructure.metrics import record_batch
from internal.usecase.translate_changes import BatchResult, RecordResult, StreamTranslator
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


FEED_SOURCE = "dynamodb_stream"


def _attribute(image: dict, name: str, type_tag: str) -> Any:
    value = image.get(name)
    if not isinstance(value, dict) or type_tag not in value:
        raise ValueError(f"missing {type_tag} attribute {name!r}")
    return value[type_tag]


def parse_image(image: Optional[dict]) -> Optional[Product]:
    """
    Build a product from a typed attribute image.

    Args:
        image: ``{"id": {"S": ...}, "name": {"S": ...}, "price": {"N": ...}}``

    Returns:
        The product, or None for an absent or empty image.

    Raises:
        ValueError: If an attribute is missing or has the wrong type.
        DomainValidationError: If the product is invalid.
    """
    if not image:
        return None
    try:
        price = Decimal(_attribute(image, "price", "N"))
    except InvalidOperation as e:
        raise ValueError(f"invalid price: {e}") from e
    return Product(
        id=_attribute(image, "id", "S"),
        name=_attribute(image, "name", "S"),
        price=price,
    )


def parse_stream_record(raw: dict) -> ChangeRecord:
    """
    Build a change record from one DynamoDB Streams record.

    Raises:
        MalformedChangeRecordError: If the record cannot be decoded.
    """
    record_id = str(raw.get("eventID") or "")
    stream = raw.get("dynamodb")
    if not isinstance(stream, dict):
        raise MalformedChangeRecordError(record_id, "missing dynamodb section")

    try:
        kind = ChangeKind(raw.get("eventName"))
    except ValueError:
        raise MalformedChangeRecordError(record_id, f"unknown eventName {raw.get('eventName')!r}")

    try:
        old_image = parse_image(stream.get("OldImage"))
        new_image = parse_image(stream.get("NewImage"))
    except (ValueError, DomainValidationError) as e:
        raise MalformedChangeRecordError(record_id, str(e))

    key_attribute = (stream.get("Keys") or {}).get("id")
    key = key_attribute.get("S") if isinstance(key_attribute, dict) else None
    if key is None:
        image = new_image or old_image
        key = image.id if image else ""

    created = stream.get("ApproximateCreationDateTime")
    if isinstance(created, (int, float)):
        arrival_time = datetime.fromtimestamp(created, tz=timezone.utc)
    else:
        arrival_time = datetime.now(timezone.utc)

    return ChangeRecord(
        record_id=record_id,
        kind=kind,
        key=key,
        sequence_token=str(stream.get("SequenceNumber") or ""),
        old_image=old_image,
        new_image=new_image,
        arrival_time=arrival_time,
    )


def parse_stream_event(
    event: dict,
) -> list[Union[ChangeRecord, RecordResult]]:
    """
    Parse a DynamoDB Streams event.

    Args:
        event: ``{"Records": [...]}`` as delivered by the trigger.

    Returns:
        One entry per record in delivery order: a change record, or a
        malformed result for a record that could not be decoded.
    """
    parsed: list[Union[ChangeRecord, RecordResult]] = []
    for raw in event.get("Records") or []:
        try:
            parsed.append(parse_stream_record(raw))
        except MalformedChangeRecordError as e:
            logger.error("Undecodable stream record", record_id=e.record_id, reason=e.reason)
            parsed.append(RecordResult.malformed(e.record_id, e.reason))
    return parsed


class StreamEventHandler:
    """
    Handles one DynamoDB Streams batch.

    Returns the partial batch failure report expected by the trigger when
    ``ReportBatchItemFailures`` is enabled.
    """

    def __init__(self, translator: StreamTranslator, batch_timeout: Optional[float] = None) -> None:
        """
        Initialize the handler.

        Args:
            translator: Translator receiving the parsed records.
            batch_timeout: Seconds allowed to translate the batch.
        """
        self._translator = translator
        self._batch_timeout = batch_timeout

    async def process(self, event: dict) -> BatchResult:
        """
        Translate a batch and return per-record outcomes.

        Args:
            event: DynamoDB Streams event.

        Returns:
            Outcomes in delivery order.
        """
        parsed = parse_stream_event(event)
        records = [p for p in parsed if isinstance(p, ChangeRecord)]
        translated = await self._translator.translate(records, timeout=self._batch_timeout)
        remaining = iter(translated.results)
        batch = BatchResult(
            results=[p if isinstance(p, RecordResult) else next(remaining) for p in parsed]
        )
        record_batch(FEED_SOURCE, batch.counts())
        return batch

    async def handle(self, event: dict) -> dict:
        """
        Translate a batch and report the records to retry.

        Args:
            event: DynamoDB Streams event.

        Returns:
            ``{"batchItemFailures": [{"itemIdentifier": ...}]}``
        """
        batch = await self.process(event)
        return batch.batch_item_failures()
