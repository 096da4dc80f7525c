"""Diagnosis (main disease) monthly analytics.

Diagnosis exports list one row per registered disease. Only rows flagged
as the main disease (``主病``) for one of three fixed departments are
analysed; each disease name is assigned to a coarse category using keyword
tables so lifestyle-disease and surgical trends can be charted per month.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from clinic_csv_parsers import DiagnosisRecord


class DiagnosisDepartment(str, Enum):
    GENERAL = "総合診療"
    FEVER = "発熱外来"
    ONLINE_INSURED = "オンライン診療（保険）"


class DiagnosisCategory(str, Enum):
    LIFESTYLE = "生活習慣病"
    SURGICAL = "外科"
    DERMATOLOGY = "皮膚科"
    OTHER = "その他"


DIAGNOSIS_TARGET_DEPARTMENTS: Tuple[DiagnosisDepartment, ...] = tuple(DiagnosisDepartment)
DIAGNOSIS_CATEGORIES: Tuple[DiagnosisCategory, ...] = (
    DiagnosisCategory.LIFESTYLE,
    DiagnosisCategory.SURGICAL,
    DiagnosisCategory.DERMATOLOGY,
)

LIFESTYLE_KEYWORDS = (
    "高血圧", "血圧", "脂質異常", "高脂血症", "高コレステロール", "糖尿病", "糖代謝",
    "耐糖能", "メタボ", "肥満", "高トリグリセリド", "痛風", "高尿酸血症",
)

SURGICAL_KEYWORDS = (
    "外傷", "創", "創傷", "切創", "切り傷", "裂傷", "挫創", "挫傷", "挫滅", "擦過傷",
    "刺創", "刺し傷", "穿刺", "穿通創", "咬傷", "打撲", "骨折", "脱臼", "腱断裂",
    "断裂", "熱傷", "火傷", "凍傷", "損傷",
)

DERMATOLOGY_KEYWORDS = (
    "湿疹", "皮膚", "皮脂", "蕁麻疹", "アトピー", "皮膚炎", "帯状疱疹", "白癬", "水虫",
    "にきび", "ニキビ", "粉瘤", "疣贅", "いぼ", "ケロイド", "脂漏", "膿", "乾癬",
    "掌蹠膿疱症", "角化症", "汗疱", "褥瘡", "毛包炎", "伝染性軟属腫", "多汗症",
    "カンジダ症",
)

# Checked in order; the first table with a matching keyword wins.
_CATEGORY_TABLE: Tuple[Tuple[DiagnosisCategory, Tuple[str, ...]], ...] = (
    (DiagnosisCategory.LIFESTYLE, LIFESTYLE_KEYWORDS),
    (DiagnosisCategory.SURGICAL, SURGICAL_KEYWORDS),
    (DiagnosisCategory.DERMATOLOGY, DERMATOLOGY_KEYWORDS),
)


def _compact(value: str) -> str:
    return "".join(value.split()).lower()


def map_diagnosis_department(value: Optional[str]) -> Optional[DiagnosisDepartment]:
    """Map a raw department label to a target department, or None."""

    if not value or not value.strip():
        return None
    base = _compact(value).replace("(", "（").replace(")", "）")
    if base.endswith("科"):
        base = base[:-1]

    if "総合診療" in base:
        return DiagnosisDepartment.GENERAL
    if "発熱外来" in base:
        return DiagnosisDepartment.FEVER
    if "オンライン診療" in base and "保険" in base:
        return DiagnosisDepartment.ONLINE_INSURED
    return None


def categorize_disease_name(disease_name: str) -> DiagnosisCategory:
    normalized = _compact(disease_name)
    for category, keywords in _CATEGORY_TABLE:
        if any(_compact(k) in normalized for k in keywords):
            return category
    return DiagnosisCategory.OTHER


# ----------------------------- Aggregation -----------------------------


@dataclass(frozen=True)
class DiagnosisDiseaseSummary:
    department: DiagnosisDepartment
    category: DiagnosisCategory
    disease_name: str
    total: int


def aggregate_diagnosis_monthly(records: Sequence["DiagnosisRecord"]) -> List[Dict[str, object]]:
    """Per-month totals for every target department (zero-filled)."""

    buckets: Dict[str, Dict[str, int]] = {}
    for record in records:
        totals = buckets.setdefault(
            record.month_key, {d.value: 0 for d in DIAGNOSIS_TARGET_DEPARTMENTS}
        )
        totals[record.department.value] += 1

    return [{"month": month, "totals": buckets[month]} for month in sorted(buckets)]


def aggregate_diagnosis_category_monthly(records: Sequence["DiagnosisRecord"]) -> List[Dict[str, object]]:
    """Per-month totals per disease category.

    The fallback category is counted too so monthly totals reconcile with
    the department view.
    """

    buckets: Dict[str, Dict[str, int]] = {}
    for record in records:
        totals = buckets.setdefault(record.month_key, {c.value: 0 for c in DiagnosisCategory})
        totals[record.category.value] += 1

    return [{"month": month, "totals": buckets[month]} for month in sorted(buckets)]


def summarize_diagnosis_by_disease(records: Sequence["DiagnosisRecord"]) -> List[DiagnosisDiseaseSummary]:
    counts: Dict[Tuple[DiagnosisDepartment, str], int] = {}
    categories: Dict[Tuple[DiagnosisDepartment, str], DiagnosisCategory] = {}
    for record in records:
        key = (record.department, record.disease_name)
        counts[key] = counts.get(key, 0) + 1
        categories.setdefault(key, record.category)

    summaries = [
        DiagnosisDiseaseSummary(
            department=department,
            category=categories[(department, disease)],
            disease_name=disease,
            total=total,
        )
        for (department, disease), total in counts.items()
    ]
    summaries.sort(key=lambda s: (-s.total, s.disease_name))
    return summaries


def filter_diagnosis_by_month_range(
    records: Sequence["DiagnosisRecord"],
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
) -> List["DiagnosisRecord"]:
    return [
        r
        for r in records
        if (not start_month or r.month_key >= start_month) and (not end_month or r.month_key <= end_month)
    ]


def _parse_month_key(month_key: str) -> Optional[Tuple[int, int]]:
    try:
        year_str, month_str = month_key.split("-")
        return int(year_str), int(month_str)
    except ValueError:
        return None


def shift_month(month_key: str, offset: int) -> Optional[str]:
    """Shift a ``yyyy-MM`` key by ``offset`` months (None if invalid)."""

    parsed = _parse_month_key(month_key)
    if parsed is None:
        return None
    year, month = parsed
    total = year * 12 + (month - 1) + offset
    if total < 0:
        return None
    return f"{total // 12}-{total % 12 + 1:02d}"


def calculate_previous_range(start_month: str, end_month: str) -> Optional[Dict[str, str]]:
    """Return the equally long month range immediately before the given one."""

    start = _parse_month_key(start_month)
    end = _parse_month_key(end_month)
    if start is None or end is None:
        return None

    span = (end[0] * 12 + end[1]) - (start[0] * 12 + start[1])
    if span < 0:
        return None

    previous_end = shift_month(start_month, -1)
    previous_start = shift_month(start_month, -(span + 1))
    if previous_end is None or previous_start is None:
        return None
    return {"start": previous_start, "end": previous_end}
