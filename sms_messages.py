"""
SMS records as stored on ZTE LTE routers.

The router reports every field as a string: the message text is hex-encoded
UTF-16BE, the date is a comma separated list of components and flags are
"0"/"1". RawMessage mirrors that wire format, Message is the decoded record.
"""

import binascii
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r'[+-]?[0-9]+')


class DecodeError(ValueError):
    """A single raw record could not be turned into a Message"""


class RawMessage(BaseModel):
    """Message record exactly as returned by sms_data_total"""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str = ""
    number: str = ""
    content: str = ""
    tag: str = ""
    date: str = ""
    received_all_concat_sms: str = ""
    concat_sms_total: str = ""
    concat_sms_received: str = ""
    sms_class: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        # JSON null is an empty field, not a broken record
        return "" if value is None else value


class Message(BaseModel):
    """Decoded SMS. Serialized with the router's field names."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(ge=0)
    sender: str = Field(alias="number")
    body: str = Field(alias="content")
    tag: str
    timestamp: datetime = Field(alias="date")
    is_complete: bool = Field(default=False, alias="received_all_concat_sms")
    part_count: int = Field(default=0, alias="concat_sms_total")
    parts_received: int = Field(default=0, alias="concat_sms_received")
    message_class: int = Field(default=0, alias="sms_class")
    # Tag "1" = unread
    read: bool = True


def parse_int(value: str) -> int:
    """
    Parses a base-10 integer with an optional sign.

    Raises:
        ValueError: if value is not a plain decimal number
    """
    if not _INT_RE.fullmatch(value):
        raise ValueError(f"invalid integer: {value!r}")
    return int(value)


def _int_or_zero(value: str) -> int:
    try:
        return parse_int(value)
    except ValueError:
        return 0


def decode_content(hex_content: str) -> str:
    """
    Decodes hex-encoded UTF-16BE text.

    A trailing odd byte is an incomplete code unit and is dropped.

    Raises:
        DecodeError: if hex_content is not valid hex
    """
    try:
        data = binascii.unhexlify(hex_content)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"failed to decode content hex: {e}") from e
    if len(data) % 2:
        data = data[:-1]
    return data.decode('utf-16-be', errors='replace')


def parse_sms_date(date: str, now: Optional[datetime] = None) -> datetime:
    """
    Parses the router's date string, e.g. "23,05,01,10,30,00,+8".

    The first six components are year (2-digit, 2000-based), month, day,
    hour, minute and second. Anything after them is ignored. Unparsable
    components count as zero, out-of-range values carry over into the next
    unit. With fewer than six components, or a date datetime cannot
    represent, the current time is returned.

    Args:
        date: Raw date string
        now: Fallback time (default: current local time)

    Returns:
        Timezone-aware datetime in the local zone
    """
    if now is None:
        now = datetime.now().astimezone()

    parts = date.split(',')
    if len(parts) < 6:
        return now

    year, month, day, hour, minute, second = (_int_or_zero(p) for p in parts[:6])
    year, month_index = divmod((2000 + year) * 12 + month - 1, 12)
    try:
        base = datetime(year, month_index + 1, 1)
        local = base + timedelta(days=day - 1, hours=hour, minutes=minute, seconds=second)
        return local.astimezone()
    except (ValueError, OverflowError, OSError):
        # outside the range datetime can represent
        return now


def decode_message(raw: RawMessage) -> Message:
    """
    Converts a raw record into a Message.

    id (non-negative) and content must parse, otherwise the record is rejected. The other
    fields fall back to zero values.

    Raises:
        DecodeError: if id or content is invalid
    """
    try:
        message_id = parse_int(raw.id)
    except ValueError as e:
        raise DecodeError(f"invalid ID: {e}") from e
    if message_id < 0:
        raise DecodeError(f"invalid ID: {raw.id!r} is negative")

    return Message(
        id=message_id,
        sender=raw.number,
        body=decode_content(raw.content),
        tag=raw.tag,
        timestamp=parse_sms_date(raw.date),
        read=raw.tag != "1",
        is_complete=raw.received_all_concat_sms == "1",
        part_count=_int_or_zero(raw.concat_sms_total),
        parts_received=_int_or_zero(raw.concat_sms_received),
        message_class=_int_or_zero(raw.sms_class),
    )


def decode_messages(records: Iterable[Any]) -> List[Message]:
    """
    Decodes a batch of raw records, keeping the router's order.

    Records that fail to decode are logged and skipped.
    """
    messages = []
    for record in records:
        try:
            raw = record if isinstance(record, RawMessage) else RawMessage.model_validate(record)
            messages.append(decode_message(raw))
        except (DecodeError, ValidationError) as e:
            record_id = record.get("id") if isinstance(record, dict) else getattr(record, "id", None)
            logger.warning(f"Error parsing SMS ID {record_id}: {e}")
    return messages
