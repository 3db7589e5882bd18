"""Tests for the field resolver."""

import math
from datetime import date, datetime

from supply_reports.aggregation.field_resolver import (
    ResolutionAudit,
    normalize_name,
    parse_date,
    record_id,
    resolve,
    resolve_date,
    resolve_flag,
    resolve_number,
)


class TestResolve:
    def test_first_present_candidate_wins(self):
        record = {"quantityDistributed": 10, "quantity": 99}
        assert resolve(record, ("quantityDistributed", "quantity")) == 10

    def test_skips_none_nan_and_blank(self):
        record = {"a": None, "b": math.nan, "c": "  ", "d": 4}
        assert resolve(record, ("a", "b", "c", "d")) == 4

    def test_zero_is_a_real_value(self):
        record = {"quantityDistributed": 0, "quantity": 5}
        assert resolve(record, ("quantityDistributed", "quantity")) == 0

    def test_default_when_nothing_matches(self):
        assert resolve({"x": 1}, ("a", "b"), default="fallback") == "fallback"

    def test_non_mapping_record_returns_default(self):
        assert resolve(None, ("a",), default=3) == 3

    def test_dotted_candidate_descends(self):
        record = {"item": {"category": "Books"}}
        assert resolve(record, ("category", "item.category")) == "Books"

    def test_dotted_candidate_through_non_mapping(self):
        record = {"item": "flat string"}
        assert resolve(record, ("item.category",), default="none") == "none"

    def test_audit_counts_missing_field(self):
        audit = ResolutionAudit()
        resolve({}, ("a",), audit=audit, field_name="shipment.date")
        resolve({}, ("a",), audit=audit, field_name="shipment.date")
        assert audit.missing["shipment.date"] == 2

    def test_audit_untouched_on_hit(self):
        audit = ResolutionAudit()
        resolve({"a": 1}, ("a",), audit=audit, field_name="x")
        assert not audit.missing


class TestResolveNumber:
    def test_skips_non_numeric_candidates(self):
        record = {"quantityShipped": "n/a", "quantity": "12"}
        assert resolve_number(record, ("quantityShipped", "quantity")) == 12.0

    def test_empty_string_falls_back(self):
        record = {"quantityDistributed": "", "quantity": 5}
        assert resolve_number(record, ("quantityDistributed", "quantity")) == 5.0

    def test_booleans_are_not_numbers(self):
        assert resolve_number({"q": True}, ("q",), default=0.0) == 0.0

    def test_infinity_rejected(self):
        assert resolve_number({"q": float("inf")}, ("q",), default=None) is None

    def test_default(self):
        assert resolve_number({}, ("q",)) == 0.0
        assert resolve_number({}, ("q",), default=None) is None


class TestParseDate:
    def test_iso_date(self):
        assert parse_date("2025-03-15") == datetime(2025, 3, 15)

    def test_iso_with_z(self):
        assert parse_date("2025-03-15T10:30:00Z") == datetime(2025, 3, 15, 10, 30)

    def test_offset_normalized_to_utc(self):
        assert parse_date("2025-03-31T23:30:00-02:00") == datetime(2025, 4, 1, 1, 30)

    def test_us_format(self):
        assert parse_date("03/15/2025") == datetime(2025, 3, 15)

    def test_date_object(self):
        assert parse_date(date(2025, 1, 2)) == datetime(2025, 1, 2)

    def test_garbage_is_none(self):
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date(12345) is None

    def test_offset_beyond_datetime_range_is_none(self):
        assert parse_date("0001-01-01T00:00:00+05:00") is None
        assert parse_date("9999-12-31T23:00:00-05:00") is None


class TestResolveDate:
    def test_prefers_business_date(self):
        record = {"distributionDate": "2025-03-02", "createdAt": "2025-01-01"}
        result = resolve_date(record, ("distributionDate", "createdAt"))
        assert result == datetime(2025, 3, 2)

    def test_unparsable_falls_through_and_is_counted(self):
        audit = ResolutionAudit()
        record = {"dispatchDate": "someday", "createdAt": "2025-02-10"}
        result = resolve_date(record, ("dispatchDate", "createdAt"), audit=audit)
        assert result == datetime(2025, 2, 10)
        assert audit.unparsable_dates == 1

    def test_nothing_usable(self):
        audit = ResolutionAudit()
        result = resolve_date({"createdAt": "bad"}, ("createdAt",), audit, "receipt.date")
        assert result is None
        assert audit.unparsable_dates == 1
        assert audit.missing["receipt.date"] == 1

    def test_out_of_range_offset_falls_through(self):
        audit = ResolutionAudit()
        record = {"distributionDate": "0001-01-01T00:00:00+05:00", "createdAt": "2025-02-10"}
        result = resolve_date(record, ("distributionDate", "createdAt"), audit=audit)
        assert result == datetime(2025, 2, 10)
        assert audit.unparsable_dates == 1


class TestHelpers:
    def test_resolve_flag(self):
        assert resolve_flag({"hasDiscrepancies": True}, ("hasDiscrepancies",))
        assert resolve_flag({"hasDiscrepancies": "yes"}, ("hasDiscrepancies",))
        assert not resolve_flag({"hasDiscrepancies": "false"}, ("hasDiscrepancies",))
        assert not resolve_flag({}, ("hasDiscrepancies",))

    def test_normalize_name(self):
        assert normalize_name("  mathematics   textbooks ", "x") == "Mathematics Textbooks"
        assert normalize_name("FREETOWN COUNCIL", "x") == "Freetown Council"
        assert normalize_name(None, "Unknown") == "Unknown"
        assert normalize_name("   ", "Unknown") == "Unknown"
        assert normalize_name({"name": "acme ltd"}, "Unknown") == "Unknown"
        assert normalize_name(["Bo"], "Unknown") == "Unknown"

    def test_record_id(self):
        assert record_id({"id": 7}) == "7"
        assert record_id({"shipmentNumber": "SH-1"}) == "SH-1"
        assert record_id({}) == "<unknown>"

    def test_audit_as_dict(self):
        audit = ResolutionAudit()
        audit.note_missing("b")
        audit.note_missing("a")
        audit.unclassified.append("r1")
        data = audit.as_dict()
        assert list(data["missing_fields"]) == ["a", "b"]
        assert data["unclassified_records"] == 1
        assert data["unclassified_ids"] == ["r1"]
