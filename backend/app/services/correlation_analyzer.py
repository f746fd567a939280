"""
偏头痛相关性分析引擎

按本地日历日聚合可穿戴数据，对比偏头痛日与正常日的各项指标，
用效应量（合并标准差的 Cohen's d）识别与偏头痛相关的模式并给出置信度。
"""
import logging
import math
import uuid
from collections import OrderedDict
from datetime import date
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.correlation import MigraineCorrelation
from app.models.migraine import MigraineDayMarker
from app.models.wearable import HourlyRecord
from app.services.daily_metrics import aggregate_day, mean, population_variance
from app.utils.datetime_helper import TzLike, local_date_key, now_utc

logger = logging.getLogger(__name__)

DIRECTION_HIGHER = "higher"
DIRECTION_LOWER = "lower"

# 相关强度门限：方向一致且 |r| 超过该值才保留
CORRELATION_FLOOR = 0.1
# 阈值位于正常均值到偏头痛均值之间 70% 处
THRESHOLD_POSITION = 0.7

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95


class PatternDefinition(NamedTuple):
    pattern_type: str
    pattern_name: str
    metric: str
    direction: str

    @property
    def operator(self) -> str:
        return ">" if self.direction == DIRECTION_HIGHER else "<"


# 候选模式（顺序即写入顺序）
PATTERN_DEFINITIONS: List[PatternDefinition] = [
    PatternDefinition("high_stress", "High Average Stress", "avg_stress", DIRECTION_HIGHER),
    PatternDefinition("stress_spike", "Stress Spikes", "max_stress", DIRECTION_HIGHER),
    PatternDefinition("low_recovery", "Low Recovery", "avg_recovery", DIRECTION_LOWER),
    PatternDefinition("low_hrv", "Low Heart Rate Variability", "avg_hrv", DIRECTION_LOWER),
    PatternDefinition("poor_sleep", "Poor Sleep Efficiency", "avg_sleep_efficiency", DIRECTION_LOWER),
    PatternDefinition("stress_volatility", "High Stress Volatility", "stress_volatility", DIRECTION_HIGHER),
]

NO_MIGRAINE_DAYS_MESSAGE = "未找到偏头痛日。请先在日历中标记偏头痛日再识别模式。"
NO_NORMAL_DAYS_MESSAGE = "数据不足。需要同时包含偏头痛日和正常日才能对比。"


class CorrelationError(Exception):
    """单个候选模式分析失败"""

    def __init__(self, pattern_type: str, message: str):
        super().__init__(f"{pattern_type}: {message}")
        self.pattern_type = pattern_type
        self.message = message


class EffectSize(NamedTuple):
    migraine_mean: float
    normal_mean: float
    migraine_variance: float
    normal_variance: float
    pooled_std: float
    cohens_d: float
    correlation: float


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_effect_size(
    migraine_values: Sequence[float], normal_values: Sequence[float]
) -> EffectSize:
    """
    计算效应量

    方差取总体形式，合并标准差按样本量加权：
    sqrt((|M|·σ²M + |N|·σ²N) / (|M| + |N|))。
    相关强度为 d/3 并截断到 [-1, 1]。
    """
    m_count = len(migraine_values)
    n_count = len(normal_values)
    migraine_mean = mean(migraine_values)
    normal_mean = mean(normal_values)
    migraine_variance = population_variance(migraine_values)
    normal_variance = population_variance(normal_values)

    pooled_std = math.sqrt(
        (m_count * migraine_variance + n_count * normal_variance) / (m_count + n_count)
    )
    cohens_d = (migraine_mean - normal_mean) / pooled_std if pooled_std > 0 else 0.0
    correlation = _clamp(cohens_d / 3, -1.0, 1.0)

    return EffectSize(
        migraine_mean=migraine_mean,
        normal_mean=normal_mean,
        migraine_variance=migraine_variance,
        normal_variance=normal_variance,
        pooled_std=pooled_std,
        cohens_d=cohens_d,
        correlation=correlation,
    )


def calculate_confidence(
    migraine_count: int,
    normal_count: int,
    cohens_d: float,
    migraine_variance: float,
    normal_variance: float,
) -> float:
    """
    计算置信度

    少于 3 个偏头痛日直接返回 0.1；否则为样本量、效应量、方差、组间平衡
    四项的加权和，截断到 [0.1, 0.95]。
    """
    if migraine_count < 3:
        return MIN_CONFIDENCE

    sample_size_factor = _clamp((migraine_count - 2) / 28, 0.0, 1.0)
    effect_size_factor = _clamp(abs(cohens_d) / 1.5, 0.0, 1.0)
    avg_variance = (migraine_variance + normal_variance) / 2
    variance_factor = 1 / (1 + avg_variance / 100)
    balance_factor = math.sqrt(
        min(normal_count, migraine_count * 10) / (migraine_count * 10)
    )

    confidence = (
        0.35 * sample_size_factor
        + 0.30 * effect_size_factor
        + 0.20 * variance_factor
        + 0.15 * balance_factor
    )

    logger.debug(
        f"置信度: samples={migraine_count}/{normal_count}, d={cohens_d:.3f}, "
        f"factors=[{sample_size_factor:.2f},{effect_size_factor:.2f},"
        f"{variance_factor:.2f},{balance_factor:.2f}] => {confidence:.3f}"
    )
    return _clamp(confidence, MIN_CONFIDENCE, MAX_CONFIDENCE)


def evaluate_pattern(
    definition: PatternDefinition,
    migraine_values: Sequence[float],
    normal_values: Sequence[float],
) -> Optional[Dict[str, Any]]:
    """
    评估单个候选模式

    Returns:
        通过方向门限的模式；任一组没有该指标或方向不符返回 None
    """
    if not migraine_values or not normal_values:
        return None

    effect = compute_effect_size(migraine_values, normal_values)
    if definition.direction == DIRECTION_HIGHER and effect.correlation <= CORRELATION_FLOOR:
        return None
    if definition.direction == DIRECTION_LOWER and effect.correlation >= -CORRELATION_FLOOR:
        return None

    threshold = effect.normal_mean + THRESHOLD_POSITION * (effect.migraine_mean - effect.normal_mean)
    confidence = calculate_confidence(
        len(migraine_values),
        len(normal_values),
        effect.cohens_d,
        effect.migraine_variance,
        effect.normal_variance,
    )

    return {
        "pattern_type": definition.pattern_type,
        "pattern_name": definition.pattern_name,
        "pattern_definition": {
            "metric": definition.metric,
            "operator": definition.operator,
            "threshold": threshold,
        },
        "correlation_strength": effect.correlation,
        "confidence_score": confidence,
        "migraine_days_count": len(migraine_values),
        "total_days_analyzed": len(migraine_values) + len(normal_values),
        "avg_value_on_migraine_days": effect.migraine_mean,
        "avg_value_on_normal_days": effect.normal_mean,
        "threshold_value": threshold,
    }


def _evaluate_candidate(
    definition: PatternDefinition,
    migraine_days: List[Dict[str, Any]],
    normal_days: List[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """
    取出两组的指标值并评估候选模式

    Raises:
        CorrelationError: 该候选模式计算失败
    """
    migraine_values = [b[definition.metric] for b in migraine_days if b.get(definition.metric) is not None]
    normal_values = [b[definition.metric] for b in normal_days if b.get(definition.metric) is not None]
    try:
        return evaluate_pattern(definition, migraine_values, normal_values)
    except Exception as e:
        raise CorrelationError(definition.pattern_type, str(e)) from e


def analyze_day_bundles(
    bundles: Dict[date, Dict[str, Any]], migraine_dates: Set[date]
) -> Dict[str, Any]:
    """
    基于每日指标包识别偏头痛相关模式（纯计算，不访问数据库）

    Args:
        bundles: 本地日期 -> 每日指标包
        migraine_dates: 标记为偏头痛日的本地日期

    Returns:
        {patterns, errors, migraine_days_count, normal_days_count, total_days_analyzed, message?}
    """
    migraine_days = [bundle for day, bundle in bundles.items() if day in migraine_dates]
    normal_days = [bundle for day, bundle in bundles.items() if day not in migraine_dates]

    result: Dict[str, Any] = {
        "patterns": [],
        "errors": [],
        "migraine_days_count": len(migraine_days),
        "normal_days_count": len(normal_days),
        "total_days_analyzed": len(migraine_days) + len(normal_days),
    }

    if not migraine_days:
        result["message"] = NO_MIGRAINE_DAYS_MESSAGE
        return result
    if not normal_days:
        result["message"] = NO_NORMAL_DAYS_MESSAGE
        return result

    for definition in PATTERN_DEFINITIONS:
        try:
            pattern = _evaluate_candidate(definition, migraine_days, normal_days)
        except CorrelationError as e:
            logger.error(f"❌ 模式分析失败: {e}")
            result["errors"].append({"pattern_type": e.pattern_type, "error": e.message})
            continue
        if pattern is not None:
            result["patterns"].append(pattern)

    return result


class MigraineCorrelationAnalyzer:
    """偏头痛相关性分析服务"""

    def __init__(self, db: AsyncSession, tz: TzLike = None):
        self.db = db
        self.tz = tz

    async def load_daily_bundles(self, user_id: uuid.UUID) -> Dict[date, Dict[str, Any]]:
        """按本地日历日聚合全部可穿戴记录"""
        result = await self.db.execute(
            select(HourlyRecord)
            .where(HourlyRecord.user_id == user_id)
            .order_by(HourlyRecord.timestamp)
        )

        grouped: "OrderedDict[date, List[HourlyRecord]]" = OrderedDict()
        for record in result.scalars().all():
            grouped.setdefault(local_date_key(record.timestamp, self.tz), []).append(record)

        return {day: aggregate_day(records) for day, records in grouped.items()}

    async def load_migraine_dates(self, user_id: uuid.UUID) -> Set[date]:
        result = await self.db.execute(
            select(MigraineDayMarker.date).where(
                and_(
                    MigraineDayMarker.user_id == user_id,
                    MigraineDayMarker.is_migraine_day.is_(True),
                )
            )
        )
        return set(result.scalars().all())

    async def analyze(self, user_id: uuid.UUID) -> Dict[str, Any]:
        """分析（不写库）"""
        bundles = await self.load_daily_bundles(user_id)
        migraine_dates = await self.load_migraine_dates(user_id)
        analysis = analyze_day_bundles(bundles, migraine_dates)

        logger.info(
            f"相关性分析: user={user_id}, migraine_days={analysis['migraine_days_count']}, "
            f"normal_days={analysis['normal_days_count']}, patterns={len(analysis['patterns'])}"
        )
        return analysis

    async def _find_pattern(
        self, user_id: uuid.UUID, pattern_type: str
    ) -> Optional[MigraineCorrelation]:
        result = await self.db.execute(
            select(MigraineCorrelation).where(
                and_(
                    MigraineCorrelation.user_id == user_id,
                    MigraineCorrelation.pattern_type == pattern_type,
                )
            )
        )
        return result.scalar_one_or_none()

    async def _update_pattern(
        self, correlation: MigraineCorrelation, pattern: Dict[str, Any]
    ) -> MigraineCorrelation:
        for key, value in pattern.items():
            setattr(correlation, key, value)
        correlation.last_updated_at = now_utc()
        await self.db.commit()
        return correlation

    async def _save_pattern(
        self, user_id: uuid.UUID, pattern: Dict[str, Any]
    ) -> MigraineCorrelation:
        """
        写入单个模式

        并发写入触发唯一约束冲突时回滚，重新读取已存在的行并更新。
        """
        existing = await self._find_pattern(user_id, pattern["pattern_type"])
        if existing is not None:
            return await self._update_pattern(existing, pattern)

        now = now_utc()
        correlation = MigraineCorrelation(
            user_id=user_id,
            first_detected_at=now,
            last_updated_at=now,
            **pattern,
        )
        self.db.add(correlation)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"模式并发写入冲突，改为更新: user={user_id}, pattern={pattern['pattern_type']}")
            existing = await self._find_pattern(user_id, pattern["pattern_type"])
            if existing is None:
                raise
            return await self._update_pattern(existing, pattern)
        return correlation

    async def save_patterns(
        self, user_id: uuid.UUID, patterns: List[Dict[str, Any]]
    ) -> Tuple[List[MigraineCorrelation], List[Dict[str, str]]]:
        """
        按 (用户, 模式类型) 写入模式

        未通过门限的旧模式不删除。单个模式写入失败不影响其他模式。

        Returns:
            (已保存的模式, 写入失败 [{pattern_type, error}])

        Raises:
            OperationalError / InterfaceError: 数据库不可用
        """
        saved: List[MigraineCorrelation] = []
        errors: List[Dict[str, str]] = []
        for pattern in patterns:
            try:
                saved.append(await self._save_pattern(user_id, pattern))
            except (OperationalError, InterfaceError):
                logger.error(f"❌ 数据库不可用，模式写入中止: user={user_id}")
                raise
            except Exception as e:
                await self.db.rollback()
                error = CorrelationError(pattern["pattern_type"], str(e))
                logger.error(f"❌ 模式写入失败: {error}")
                errors.append({"pattern_type": error.pattern_type, "error": error.message})

        return saved, errors

    async def process_correlations(self, user_id: uuid.UUID) -> Dict[str, Any]:
        """
        分析并保存相关性模式

        Returns:
            {patterns_found, patterns, errors, migraine_days_count, normal_days_count,
             total_days_analyzed, message?}
        """
        analysis = await self.analyze(user_id)
        if analysis["patterns"]:
            saved, errors = await self.save_patterns(user_id, analysis["patterns"])
            analysis["errors"].extend(errors)
            logger.info(f"✅ 相关性模式已保存: user={user_id}, count={len(saved)}")

        return {"patterns_found": len(analysis["patterns"]), **analysis}

    async def get_patterns(self, user_id: uuid.UUID) -> List[MigraineCorrelation]:
        """已保存的模式（置信度降序）"""
        result = await self.db.execute(
            select(MigraineCorrelation)
            .where(MigraineCorrelation.user_id == user_id)
            .order_by(
                MigraineCorrelation.confidence_score.desc(),
                MigraineCorrelation.pattern_type,
            )
        )
        return list(result.scalars().all())
