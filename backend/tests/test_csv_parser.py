"""
CSV解析测试
"""
from datetime import datetime

import pytest
import pytz

from app.services.csv_parser import (
    DEFAULT_SOURCE,
    ParseError,
    detect_separator,
    detect_source,
    find_matching_field,
    normalize_column_name,
    parse_number,
    parse_timestamp,
    parse_wearable_csv,
    resolve_headers,
)


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


class TestHeaderResolution:
    """表头识别"""

    def test_normalize_column_name(self):
        assert normalize_column_name("  Stress Level ") == "stress_level"
        assert normalize_column_name("Skin-Temp (°C)") == "skin_temp_c"
        assert normalize_column_name("heart__rate") == "heart_rate"
        assert normalize_column_name("") == ""

    def test_ambiguous_headers(self):
        field_mapping, unrecognized = resolve_headers(["timestamp", "HRV_ms", "resting_HR"])

        assert field_mapping == {
            "timestamp": "timestamp",
            "HRV_ms": "hrv",
            "resting_HR": "heartRate",
        }
        assert unrecognized == []

    @pytest.mark.parametrize(
        "header", ["avg_hrv", "hrv_heart_rate", "nightly_hrv_bpm", "HRV", "HRV(ms)", "hrvscore"]
    )
    def test_hrv_never_maps_to_heart_rate(self, header):
        assert find_matching_field(header) == "hrv"

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("HR", "heartRate"),
            ("Resting Heart Rate", "heartRate"),
            ("Sleep HR", "sleepHeartRate"),
            ("Sleep Heart-Rate avg", "sleepHeartRate"),
            ("Stress Level (0-100)", "stress"),
            ("Skin Temp (°C)", "skinTemperature"),
            ("Readiness", "recovery"),
            ("Sleep Efficiency %", "sleepEfficiency"),
            ("Restless Periods", "restlessPeriods"),
            ("Date", "timestamp"),
            ("BPM(avg)", "heartRate"),
            ("RHR5min", "heartRate"),
            ("avgRHR", "heartRate"),
        ],
    )
    def test_common_variants(self, header, expected):
        assert find_matching_field(header) == expected

    def test_unrecognized_headers(self):
        field_mapping, unrecognized = resolve_headers(["timestamp", "steps", "Device Model"])

        assert field_mapping == {"timestamp": "timestamp"}
        assert unrecognized == ["steps", "Device Model"]


class TestSeparator:
    """分隔符识别"""

    def test_semicolon(self):
        result = parse_wearable_csv(b"a;b;c\n1;2;3")

        assert result.separator == ";"
        assert result.headers == ["a", "b", "c"]
        assert result.total_rows == 1

    def test_comma(self):
        result = parse_wearable_csv(b"a,b,c\n1,2,3")

        assert result.separator == ","
        assert result.headers == ["a", "b", "c"]
        assert result.total_rows == 1

    def test_tie_goes_to_semicolon(self):
        assert detect_separator("a;b,c") == ";"

    def test_majority_wins(self):
        assert detect_separator("a,b,c;d") == ","

    def test_no_separator_raises(self):
        with pytest.raises(ParseError):
            parse_wearable_csv(b"timestamp\n2025-01-01 10:00")


class TestCellParsing:
    """单元格解析"""

    def test_timestamp_formats(self):
        assert parse_timestamp("2025-01-01T10:00:00Z") == utc(2025, 1, 1, 10)
        assert parse_timestamp("2025-01-01 10:00", tz="UTC") == utc(2025, 1, 1, 10)
        assert parse_timestamp("2025-01-01;10:00", tz="UTC") == utc(2025, 1, 1, 10)

    def test_naive_timestamp_uses_given_zone(self):
        assert parse_timestamp("2025-01-01 10:00", tz="Europe/Berlin") == utc(2025, 1, 1, 9)

    def test_invalid_timestamp(self):
        assert parse_timestamp("not-a-date") is None
        assert parse_timestamp("") is None

    def test_parse_number(self):
        assert parse_number("42.5") == 42.5
        assert parse_number("abc") is None
        assert parse_number("nan") is None
        assert parse_number("inf") is None
        assert parse_number("12,5", separator=";") == 12.5
        assert parse_number("12,5", separator=",") is None


class TestParseCsv:
    """完整文件解析"""

    def test_rows_and_metrics(self):
        content = (
            b"timestamp,stress,recovery,HRV,heart_rate,steps\n"
            b"2025-01-01 10:00,20,80,45,62,5000\n"
            b"2025-01-01 11:00,25,,50,64,5200\n"
        )
        result = parse_wearable_csv(content, "export.csv", tz="UTC")

        assert result.total_rows == 2
        assert result.unrecognized_fields == ["steps"]
        first, second = result.rows
        assert first.timestamp == utc(2025, 1, 1, 10)
        assert first.stress_value == 20
        assert first.recovery_value == 80
        assert first.hrv == 45
        assert first.heart_rate == 62
        assert first.additional_data == {"steps": 5000.0}
        assert second.recovery_value is None

    def test_non_numeric_metric_kept_in_additional_data(self):
        content = b"timestamp,stress,notes\n2025-01-01 10:00,high,felt tired\n"
        result = parse_wearable_csv(content, tz="UTC")

        row = result.rows[0]
        assert row.stress_value is None
        assert row.additional_data == {"stress": "high", "notes": "felt tired"}

    def test_unit_suffixed_headers_are_mapped(self):
        content = b"timestamp,HRV(ms),BPM(avg)\n2025-01-01 10:00,45,61\n"
        result = parse_wearable_csv(content, tz="UTC")

        assert result.field_mapping == {
            "timestamp": "timestamp",
            "HRV(ms)": "hrv",
            "BPM(avg)": "heartRate",
        }
        assert result.unrecognized_fields == []
        row = result.rows[0]
        assert row.hrv == 45
        assert row.heart_rate == 61
        assert row.additional_data == {}

    def test_comma_decimal_with_semicolon_separator(self):
        content = b"timestamp;stress\n2025-01-01 10:00;12,5\n"
        result = parse_wearable_csv(content, tz="UTC")

        assert result.rows[0].stress_value == 12.5

    def test_date_and_time_columns_combined(self):
        content = b"date,time,stress\n2025-01-01,10:30,20\n"
        result = parse_wearable_csv(content, tz="UTC")

        assert result.field_mapping == {"date": "timestamp", "time": "timestamp", "stress": "stress"}
        assert result.rows[0].timestamp == utc(2025, 1, 1, 10, 30)

    def test_rows_without_timestamp_are_rejected(self):
        content = (
            b"timestamp,stress\n"
            b"2025-01-01 10:00,20\n"
            b"not-a-date,21\n"
        )
        result = parse_wearable_csv(content, tz="UTC")

        assert len(result.rows) == 1
        assert len(result.rejected_rows) == 1
        assert result.rejected_rows[0]["line"] == 3
        assert result.total_rows == 2

    def test_empty_rows_ignored(self):
        content = b"timestamp,stress\n2025-01-01 10:00,20\n,\n"
        result = parse_wearable_csv(content, tz="UTC")

        assert result.total_rows == 1
        assert result.rejected_rows == []

    def test_bom_is_stripped(self):
        content = "\ufefftimestamp,stress\n2025-01-01 10:00,20\n".encode("utf-8")
        result = parse_wearable_csv(content, tz="UTC")

        assert result.headers == ["timestamp", "stress"]
        assert len(result.rows) == 1

    def test_empty_file(self):
        result = parse_wearable_csv(b"")

        assert result.rows == []
        assert result.field_mapping == {}
        assert result.total_rows == 0

    def test_header_only(self):
        result = parse_wearable_csv(b"timestamp,stress,hrv\n")

        assert result.rows == []
        assert result.field_mapping == {
            "timestamp": "timestamp",
            "stress": "stress",
            "hrv": "hrv",
        }

    def test_non_utf8_raises(self):
        with pytest.raises(ParseError):
            parse_wearable_csv(b"timestamp,stress\n\xff\xfe,1\n")


class TestSourceDetection:
    """设备来源识别"""

    def test_from_filename(self):
        assert detect_source([], "oura_export_2025.csv") == "oura"

    def test_from_headers(self):
        assert detect_source(["timestamp", "Fitbit Heart Rate"]) == "fitbit"
        assert detect_source(["Apple Watch HRV"]) == "apple_watch"

    def test_default(self):
        assert detect_source(["timestamp", "stress"], "data.csv") == DEFAULT_SOURCE

    def test_parse_result_source(self):
        result = parse_wearable_csv(b"timestamp,stress\n2025-01-01 10:00,20\n", "garmin.csv")
        assert result.source == "garmin"
