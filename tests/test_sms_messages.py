"""
Unit tests for SMS record decoding.
"""

import logging
from datetime import datetime, timedelta

import pytest

from sms_messages import (
    DecodeError,
    Message,
    RawMessage,
    decode_content,
    decode_message,
    decode_messages,
    parse_int,
    parse_sms_date,
)


def make_raw(**overrides) -> dict:
    record = {
        "id": "42",
        "number": "+491701234567",
        "content": "00480065006C006C006F",
        "tag": "1",
        "date": "23,05,01,10,30,00,+8",
        "received_all_concat_sms": "1",
        "concat_sms_total": "2",
        "concat_sms_received": "2",
        "sms_class": "4",
    }
    record.update(overrides)
    return record


class TestDecodeContent:
    """Hex-encoded UTF-16BE text."""

    def test_ascii_text(self):
        assert decode_content("00480065006C006C006F") == "Hello"

    def test_lowercase_hex(self):
        assert decode_content("00680069") == "hi"

    def test_empty_content(self):
        assert decode_content("") == ""

    @pytest.mark.parametrize("text", ["Grüße aus Köln", "Привет", "短信", "ok 😀"])
    def test_recovers_encoded_text(self, text):
        assert decode_content(text.encode("utf-16-be").hex()) == text

    def test_trailing_odd_byte_is_dropped(self):
        assert decode_content("00480069" + "00") == "Hi"

    def test_odd_length_hex_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_content("0048006")

    def test_non_hex_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_content("zz00")


class TestParseSmsDate:
    """Comma separated router dates."""

    def test_full_date_with_timezone_suffix(self):
        parsed = parse_sms_date("23,5,1,10,30,0,+8")

        assert (parsed.year, parsed.month, parsed.day) == (2023, 5, 1)
        assert (parsed.hour, parsed.minute, parsed.second) == (10, 30, 0)
        assert parsed.tzinfo is not None

    def test_zero_padded_components(self):
        parsed = parse_sms_date("24,12,31,23,59,58")

        assert parsed.replace(tzinfo=None) == datetime(2024, 12, 31, 23, 59, 58)

    def test_too_few_components_returns_now(self):
        before = datetime.now().astimezone()
        parsed = parse_sms_date("23,5,1")
        after = datetime.now().astimezone()

        assert before - timedelta(seconds=1) <= parsed <= after + timedelta(seconds=1)

    def test_too_few_components_uses_given_now(self):
        now = datetime(2020, 1, 2, 3, 4, 5).astimezone()

        assert parse_sms_date("", now=now) == now

    def test_unparsable_component_counts_as_zero(self):
        parsed = parse_sms_date("23,5,1,xx,30,0")

        assert (parsed.hour, parsed.minute) == (0, 30)

    def test_zero_month_carries_into_previous_year(self):
        parsed = parse_sms_date("23,xx,1,0,0,0")

        assert (parsed.year, parsed.month, parsed.day) == (2022, 12, 1)

    def test_unrepresentable_date_returns_now(self):
        now = datetime(2020, 1, 2, 3, 4, 5).astimezone()

        assert parse_sms_date("99999999,1,1,0,0,0", now=now) == now


class TestParseInt:

    @pytest.mark.parametrize("value,expected", [("0", 0), ("17", 17), ("+3", 3), ("-2", -2)])
    def test_decimal_values(self, value, expected):
        assert parse_int(value) == expected

    @pytest.mark.parametrize("value", ["", " 1", "1.0", "0x10", "1_000", "abc", "5\n", "١٢"])
    def test_rejects_non_decimal(self, value):
        with pytest.raises(ValueError):
            parse_int(value)


class TestDecodeMessage:
    """Raw record -> Message."""

    def test_valid_record(self):
        message = decode_message(RawMessage(**make_raw()))

        assert message.id == 42
        assert message.sender == "+491701234567"
        assert message.body == "Hello"
        assert message.tag == "1"
        assert message.timestamp.replace(tzinfo=None) == datetime(2023, 5, 1, 10, 30, 0)
        assert message.is_complete is True
        assert message.part_count == 2
        assert message.parts_received == 2
        assert message.message_class == 4

    def test_tag_one_is_unread(self):
        assert decode_message(RawMessage(**make_raw(tag="1"))).read is False

    @pytest.mark.parametrize("tag", ["0", "2", "", "10"])
    def test_other_tags_are_read(self, tag):
        assert decode_message(RawMessage(**make_raw(tag=tag))).read is True

    def test_concat_flag_only_true_for_one(self):
        assert decode_message(RawMessage(**make_raw(received_all_concat_sms="0"))).is_complete is False
        assert decode_message(RawMessage(**make_raw(received_all_concat_sms="true"))).is_complete is False

    def test_invalid_integers_default_to_zero(self):
        raw = RawMessage(**make_raw(concat_sms_total="", concat_sms_received="x", sms_class="1.5"))
        message = decode_message(raw)

        assert (message.part_count, message.parts_received, message.message_class) == (0, 0, 0)

    def test_invalid_id_rejects_record(self):
        with pytest.raises(DecodeError):
            decode_message(RawMessage(**make_raw(id="abc")))

    def test_negative_id_rejects_record(self):
        with pytest.raises(DecodeError):
            decode_message(RawMessage(**make_raw(id="-2")))

    def test_invalid_content_rejects_record(self):
        with pytest.raises(DecodeError):
            decode_message(RawMessage(**make_raw(content="XYZ")))

    def test_decoding_is_repeatable(self):
        raw = RawMessage(**make_raw())

        assert decode_message(raw) == decode_message(raw)

    def test_serializes_with_router_field_names(self):
        data = decode_message(RawMessage(**make_raw())).model_dump(mode="json", by_alias=True)

        assert set(data) == {
            "id", "number", "content", "tag", "date", "received_all_concat_sms",
            "concat_sms_total", "concat_sms_received", "sms_class", "read",
        }
        assert data["content"] == "Hello"
        assert data["date"].startswith("2023-05-01T10:30:00")


class TestRawMessage:

    def test_numbers_are_coerced_to_strings(self):
        raw = RawMessage.model_validate({"id": 7, "content": "0041", "sms_class": 1})

        assert raw.id == "7"
        assert raw.sms_class == "1"

    def test_missing_fields_default_to_empty(self):
        raw = RawMessage.model_validate({"id": "1"})

        assert raw.content == ""
        assert raw.date == ""

    def test_null_fields_become_empty(self):
        raw = RawMessage.model_validate({"id": "1", "tag": None, "sms_class": None})

        assert raw.tag == ""
        assert raw.sms_class == ""

    def test_unknown_fields_are_ignored(self):
        raw = RawMessage.model_validate({"id": "1", "draft_group_id": "", "mem_store": "nv"})

        assert not hasattr(raw, "mem_store")


class TestDecodeMessages:
    """Batch decoding drops broken records only."""

    def test_invalid_record_is_skipped(self, caplog):
        records = [make_raw(id="not-a-number"), make_raw(id="7")]

        with caplog.at_level(logging.WARNING):
            messages = decode_messages(records)

        assert [m.id for m in messages] == [7]
        assert "not-a-number" in caplog.text

    def test_keeps_router_order(self):
        records = [make_raw(id="9"), make_raw(id="3"), make_raw(id="5")]

        assert [m.id for m in decode_messages(records)] == [9, 3, 5]

    def test_non_object_record_is_skipped(self):
        messages = decode_messages(["garbage", make_raw(id="1")])

        assert [m.id for m in messages] == [1]

    def test_null_sub_fields_keep_record(self):
        record = make_raw(
            id="5", content="0041", tag=None, date=None, received_all_concat_sms=None,
            concat_sms_total=None, concat_sms_received=None, sms_class=None,
        )

        messages = decode_messages([record])

        assert [m.id for m in messages] == [5]
        message = messages[0]
        assert message.body == "A"
        assert message.read is True
        assert message.is_complete is False
        assert (message.part_count, message.parts_received, message.message_class) == (0, 0, 0)

    def test_null_id_drops_record(self):
        assert decode_messages([make_raw(id=None)]) == []

    def test_accepts_raw_message_instances(self):
        messages = decode_messages([RawMessage(**make_raw())])

        assert len(messages) == 1
        assert isinstance(messages[0], Message)

    def test_empty_batch(self):
        assert decode_messages([]) == []
