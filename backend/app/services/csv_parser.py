"""
可穿戴设备CSV解析

把不同设备（Oura、Fitbit、Garmin、Apple Watch、通用导出）的CSV表头映射到标准字段，
并将数据行解析为带UTC时间戳的每小时记录草稿。
"""
import io
import logging
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from dateutil import parser as date_parser
from pydantic import BaseModel, Field

from app.utils.datetime_helper import TzLike, ensure_utc, localize

logger = logging.getLogger(__name__)

# 标准字段 -> 可接受的表头变体（按优先级排列）
FIELD_MAPPINGS: Dict[str, List[str]] = {
    "timestamp": [
        "datetime", "timestamp", "date_time", "date", "time",
        "recorded_at", "measured_at", "created_at",
    ],
    "stress": [
        "stress", "stress_value", "stress_level", "stress_score",
        "avg_stress_value", "avg_stress", "stress_measurement",
    ],
    "recovery": [
        "recovery", "recovery_value", "recovery_score", "recovery_index",
        "avg_recovery_value", "avg_recovery", "readiness",
    ],
    # hrv 必须排在 heartRate 之前
    "hrv": [
        "hrv", "heart_rate_variability", "hr_variability", "hrv_value",
        "rmssd", "sdnn", "heart_rate_variability_ms", "hrv_ms",
    ],
    "heartRate": [
        "heart_rate", "heartrate", "bpm", "pulse", "beats_per_minute",
        "avg_heart_rate", "resting_heart_rate", "rhr", "resting_hr",
        "hr_bpm", "heart_rate_bpm", "avg_hr", "average_heart_rate", "hr",
    ],
    "sleepEfficiency": [
        "sleep_efficiency", "sleep_efficiency_percent", "efficiency",
        "sleep_quality", "sleep_score",
    ],
    "sleepHeartRate": [
        "sleep_heart_rate", "sleep_hr", "sleep_bpm",
        "avg_sleep_heart_rate", "avg_sleep_hr", "nightly_heart_rate",
    ],
    "skinTemperature": [
        "skin_temperature", "skin_temp", "temperature", "temp",
        "avg_skin_temp", "avg_skin_temperature", "body_temperature", "body_temp",
    ],
    "restlessPeriods": [
        "restless_periods", "restlessness", "restless_count",
        "movements", "sleep_movements",
    ],
}

# 标准字段 -> HourlyRecord 属性
FIELD_COLUMNS: Dict[str, str] = {
    "stress": "stress_value",
    "recovery": "recovery_value",
    "hrv": "hrv",
    "heartRate": "heart_rate",
    "sleepEfficiency": "sleep_efficiency",
    "sleepHeartRate": "sleep_heart_rate",
    "skinTemperature": "skin_temperature",
    "restlessPeriods": "restless_periods",
}

# 设备关键字 -> 来源标签
SOURCE_KEYWORDS: List[Tuple[str, str]] = [
    ("oura", "oura"),
    ("fitbit", "fitbit"),
    ("garmin", "garmin"),
    ("apple", "apple_watch"),
]
DEFAULT_SOURCE = "manual_upload"

CHUNK_SIZE = 1000

_SEPARATOR_RUN = re.compile(r"[_\s-]+")
_NON_ALNUM = re.compile(r"[^a-z0-9_]")


class ParseError(Exception):
    """CSV无法解析（非UTF-8、无分隔符等）"""

    pass


class ParsedRow(BaseModel):
    """解析后的一行数据（尚未关联上传会话）"""

    timestamp: datetime
    stress_value: Optional[float] = None
    recovery_value: Optional[float] = None
    heart_rate: Optional[float] = None
    hrv: Optional[float] = None
    sleep_efficiency: Optional[float] = None
    sleep_heart_rate: Optional[float] = None
    skin_temperature: Optional[float] = None
    restless_periods: Optional[float] = None
    additional_data: Dict[str, Any] = Field(default_factory=dict)

    def metric_values(self) -> Dict[str, Optional[float]]:
        """本行的指标字段"""
        return {column: getattr(self, column) for column in FIELD_COLUMNS.values()}


class ParseResult(BaseModel):
    """CSV解析结果"""

    rows: List[ParsedRow] = Field(default_factory=list)
    field_mapping: Dict[str, str] = Field(default_factory=dict)
    unrecognized_fields: List[str] = Field(default_factory=list)
    source: str = DEFAULT_SOURCE
    headers: List[str] = Field(default_factory=list)
    separator: Optional[str] = None
    rejected_rows: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        """有效行 + 因时间戳无效被拒绝的行"""
        return len(self.rows) + len(self.rejected_rows)


# ============ 表头识别 ============

def normalize_column_name(name: str) -> str:
    """
    规范化表头

    小写、去首尾空白、把连续的 `_`/空白/`-` 合并为 `_`，再去掉其他非字母数字字符。
    """
    if not name:
        return ""
    normalized = _SEPARATOR_RUN.sub("_", name.lower().strip())
    return _NON_ALNUM.sub("", normalized)


def _occurrences(header: str, variant: str):
    """variant 在 header 中的所有起始位置"""
    start = header.find(variant)
    while start != -1:
        yield start
        start = header.find(variant, start + 1)


def _boundary_before(header: str, index: int) -> bool:
    return index == 0 or header[index - 1] == "_"


def _aligned(header: str, variant: str, min_length: int) -> bool:
    """变体出现在开头、结尾或 `_` 之后"""
    if len(variant) < min_length:
        return False
    return any(
        _boundary_before(header, i) or i + len(variant) == len(header)
        for i in _occurrences(header, variant)
    )


def _exact_match(header: str, variant: str) -> bool:
    return header == variant


def _prefix_match(header: str, variant: str) -> bool:
    return _aligned(header, variant, 3)


def _substring_match(header: str, variant: str) -> bool:
    return _aligned(header, variant, 4)


# 匹配阶段按顺序执行，前一阶段命中即停止
MATCHER_STAGES: List[Tuple[str, Callable[[str, str], bool]]] = [
    ("exact", _exact_match),
    ("prefix", _prefix_match),
    ("substring", _substring_match),
]


def _is_allowed(header: str, field: str) -> bool:
    # 含 hrv 的表头永远不能映射为心率
    return not (field == "heartRate" and "hrv" in header)


def find_matching_field(column_name: str) -> Optional[str]:
    """
    查找表头对应的标准字段

    Args:
        column_name: 原始表头

    Returns:
        标准字段名，无法识别返回 None
    """
    header = normalize_column_name(column_name)
    if not header:
        return None

    for _, matcher in MATCHER_STAGES:
        best_field = None
        best_length = 0
        for field, variants in FIELD_MAPPINGS.items():
            if not _is_allowed(header, field):
                continue
            for variant in variants:
                # 同一阶段内最长变体优先，长度相同按目录顺序
                if len(variant) > best_length and matcher(header, variant):
                    best_field = field
                    best_length = len(variant)
        if best_field is not None:
            return best_field

    return None


def resolve_headers(headers: List[str]) -> Tuple[Dict[str, str], List[str]]:
    """
    解析全部表头

    Returns:
        (表头 -> 标准字段, 未识别表头列表)
    """
    field_mapping: Dict[str, str] = {}
    unrecognized: List[str] = []
    for header in headers:
        field = find_matching_field(header)
        if field:
            field_mapping[header] = field
        else:
            unrecognized.append(header)
    return field_mapping, unrecognized


def detect_separator(first_line: str) -> str:
    """根据首行判断分隔符，分号数量不少于逗号时选分号"""
    semicolons = first_line.count(";")
    commas = first_line.count(",")
    if semicolons == 0 and commas == 0:
        raise ParseError("无法识别CSV分隔符（首行既没有 ';' 也没有 ','）")
    return ";" if semicolons >= commas else ","


def detect_source(headers: List[str], filename: str = "") -> str:
    """根据文件名和表头判断设备来源"""
    haystack = f"{filename or ''} {' '.join(headers)}".lower()
    for keyword, source in SOURCE_KEYWORDS:
        if keyword in haystack:
            return source
    return DEFAULT_SOURCE


# ============ 单元格解析 ============

def parse_timestamp(value: str, tz: TzLike = None) -> Optional[datetime]:
    """
    解析时间戳

    支持 dateutil 能识别的任意格式；内部的 `;` 视为空格。
    不带时区的时间按本地时区解释，返回UTC时间。
    """
    text = value.replace(";", " ").strip()
    if not text:
        return None
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None

    if parsed.tzinfo is None:
        parsed = localize(parsed, tz)
    return ensure_utc(parsed)


def parse_number(value: str, separator: Optional[str] = None) -> Optional[float]:
    """解析有限浮点数，失败返回 None"""
    candidates = [value]
    # 分号分隔的文件常用逗号作小数点
    if separator == ";" and "," in value:
        candidates.append(value.replace(",", "."))
    for candidate in candidates:
        try:
            number = float(candidate)
        except ValueError:
            continue
        if math.isfinite(number):
            return number
    return None


def _cell_text(value: Any) -> str:
    # 短行的缺失单元格是 NaN
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value).strip()


def _resolve_row_timestamp(
    cells: List[Tuple[str, str]], tz: TzLike
) -> Optional[datetime]:
    """多个时间列（如 date + time）先拼接解析，失败再逐列尝试"""
    values = [value for _, value in cells if value]
    if not values:
        return None
    if len(values) > 1:
        combined = parse_timestamp(" ".join(values), tz)
        if combined is not None:
            return combined
    for value in values:
        parsed = parse_timestamp(value, tz)
        if parsed is not None:
            return parsed
    return None


def parse_row(
    headers: List[str],
    values: Tuple[Any, ...],
    field_mapping: Dict[str, str],
    separator: Optional[str] = None,
    tz: TzLike = None,
) -> Tuple[Optional[ParsedRow], bool]:
    """
    解析单行

    Returns:
        (解析结果, 是否有非时间戳的内容)；没有有效时间戳时解析结果为 None
    """
    timestamp_cells: List[Tuple[str, str]] = []
    metrics: Dict[str, float] = {}
    additional: Dict[str, Any] = {}
    has_values = False

    for header, raw in zip(headers, values):
        value = _cell_text(raw)
        field = field_mapping.get(header)

        if field == "timestamp":
            timestamp_cells.append((header, value))
            continue
        if not value:
            continue

        has_values = True
        if field is not None:
            column = FIELD_COLUMNS[field]
            number = parse_number(value, separator)
            if number is not None and column not in metrics:
                metrics[column] = number
            else:
                additional[header] = value
        else:
            number = parse_number(value, separator)
            additional[header] = number if number is not None else value

    timestamp = _resolve_row_timestamp(timestamp_cells, tz)
    if timestamp is None:
        return None, has_values

    return ParsedRow(timestamp=timestamp, additional_data=additional, **metrics), has_values


# ============ 入口 ============

def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"文件不是UTF-8文本: {e}") from e


def parse_wearable_csv(content: bytes, filename: str = "", tz: TzLike = None) -> ParseResult:
    """
    解析可穿戴设备CSV

    Args:
        content: 文件内容
        filename: 原始文件名（用于识别设备来源）
        tz: 无时区时间戳使用的时区（默认本地日历时区）

    Returns:
        ParseResult

    Raises:
        ParseError: 非UTF-8或首行没有分隔符
    """
    text = _decode(content)
    if not text.strip():
        logger.info(f"CSV为空: {filename}")
        return ParseResult(source=detect_source([], filename))

    first_line = text.lstrip("\r\n").splitlines()[0]
    separator = detect_separator(first_line)

    read_options = dict(
        sep=separator,
        index_col=False,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        on_bad_lines="skip",
    )

    try:
        headers = [str(h) for h in pd.read_csv(io.StringIO(text), nrows=0, **read_options).columns]
    except pd.errors.EmptyDataError:
        return ParseResult(source=detect_source([], filename), separator=separator)
    except pd.errors.ParserError as e:
        raise ParseError(f"CSV表头解析失败: {e}") from e

    field_mapping, unrecognized = resolve_headers(headers)
    result = ParseResult(
        field_mapping=field_mapping,
        unrecognized_fields=unrecognized,
        source=detect_source(headers, filename),
        headers=headers,
        separator=separator,
    )

    if "timestamp" not in field_mapping.values():
        logger.warning(f"CSV缺少时间戳列: {filename} headers={headers}")

    line_number = 1
    try:
        for chunk in pd.read_csv(io.StringIO(text), chunksize=CHUNK_SIZE, **read_options):
            for values in chunk.itertuples(index=False, name=None):
                line_number += 1
                row, has_values = parse_row(headers, values, field_mapping, separator, tz)
                if row is not None:
                    result.rows.append(row)
                elif has_values:
                    result.rejected_rows.append(
                        {"line": line_number, "error": "缺少有效的时间戳"}
                    )
    except pd.errors.ParserError as e:
        raise ParseError(f"CSV解析失败: {e}") from e

    logger.info(
        f"CSV解析完成: file={filename}, source={result.source}, rows={len(result.rows)}, "
        f"rejected={len(result.rejected_rows)}, unrecognized={unrecognized}"
    )
    return result
