from __future__ import annotations

from typing import Optional

import pandas as pd
import pytest

from clinic_csv_parsers import (
    DepartmentGroup,
    KarteRecord,
    ListingRecord,
    ReservationRecord,
    VisitType,
)
from clinic_locale import TOKYO_TZ


HOUR_HEADERS = [f"{h}時" for h in range(24)]


def jst(value: str) -> pd.Timestamp:
    return pd.Timestamp(value, tz=TOKYO_TZ)


def make_reservation(
    when: str,
    group: DepartmentGroup = DepartmentGroup.INTERNAL,
    visit_type: VisitType = VisitType.FIRST,
    count: int = 1,
    department: str = "内科外来",
    received: Optional[str] = None,
    identity_key: Optional[str] = None,
) -> ReservationRecord:
    return ReservationRecord(
        date_time=jst(when),
        department=department,
        department_group=group,
        type=visit_type,
        count=count,
        is_same_day=False,
        received_at=jst(received) if received else None,
        identity_key=identity_key,
    )


def make_listing(when: str, amount=None, cv=None, cvr=None, cpa=None, hourly=None) -> ListingRecord:
    return ListingRecord(
        date=jst(when),
        amount=amount,
        cv=cv,
        cvr=cvr,
        cpa=cpa,
        hourly_cv=tuple(hourly) if hourly is not None else (None,) * 24,
    )


def make_karte(
    date_iso: str,
    visit_type: VisitType = VisitType.FIRST,
    identity_key: Optional[str] = None,
    birth_date_iso: Optional[str] = None,
) -> KarteRecord:
    return KarteRecord(
        date_iso=date_iso,
        month_key=date_iso[:7],
        visit_type=visit_type,
        birth_date_iso=birth_date_iso,
        identity_key=identity_key,
    )


def listing_csv(*rows: str, headers=None) -> str:
    header = ",".join(headers if headers is not None else ["日付", "金額", "CV", "CVR", "CPA"] + HOUR_HEADERS)
    return "\n".join([header, *rows]) + "\n"


def hourly_cells(**values: str) -> str:
    """24 comma-joined hour cells; keyword ``h9="3"`` sets the 9時 cell."""

    return ",".join(values.get(f"h{h}", "") for h in range(24))


@pytest.fixture
def reservations_csv() -> str:
    # Second data row carries an unparseable date.
    return (
        "予約日時,診療科,初再診\n"
        "2025-10-05 09:00,内科外来,初診\n"
        "bad-date,内科外来,再診\n"
        "2025-11-01 10:00,発熱外来,再診\n"
    )


@pytest.fixture
def karte_csv() -> str:
    return (
        "日付,初再診,患者番号,患者氏名,患者生年月日,診療科,点数\n"
        "2025/9/15,初診,00123,ヤマダ タロウ,1980/01/02,内科,250\n"
        "2025/10/03,再診,123,,,内科,\n"
        "2025/10/04,その他,,山田 花子,bad,内科,\n"
    )


@pytest.fixture
def diagnosis_csv() -> str:
    return (
        "主病,診療科,開始日,傷病名,患者番号,患者氏名,患者生年月日\n"
        "主病,総合診療科,2025年10月5日,高血圧症,001,テスト,1970/1/1\n"
        "主病,総合診療科,2025年10月5日,高血圧症,001,テスト,1970/1/1\n"
        ",総合診療科,2025/10/6,湿疹,2,,\n"
        "主病,整形外科,2025/10/6,骨折,3,,\n"
        "主病,発熱外来,2025/10/7,擦過傷,4,,\n"
        "主病,オンライン診療(保険),2025/11/1,アトピー性皮膚炎,5,,\n"
        "主病,総合診療,bad,風邪,6,,\n"
    )
