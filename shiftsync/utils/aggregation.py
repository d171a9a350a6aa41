import re
from .datetime_helpers import parse_record_date, start_of_month

MONTH_FILTER_PATTERN = re.compile(r'^(\d{4})-(\d{2})$')


def parse_month_filter(value: str):
    """月フィルター（YYYY-MM）を (年, 月) に変換。不正な場合はNone"""
    if not value:
        return None

    match = MONTH_FILTER_PATTERN.match(value.strip())
    if not match:
        return None

    year, month = int(match.group(1)), int(match.group(2))
    if not (1 <= month <= 12):
        return None
    return year, month


def matches_search(record: dict, search: str) -> bool:
    """従業員名またはユーザー名の部分一致（大文字小文字を区別しない）"""
    if not search or not search.strip():
        return True

    profile = record.get('profiles') or {}
    term = search.strip().lower()
    full_name = (profile.get('full_name') or '').lower()
    username = (profile.get('username') or '').lower()
    return term in full_name or term in username


def matches_month(record: dict, year_month) -> bool:
    """レコード日付の年月が一致するか"""
    if not year_month:
        return True

    record_date = parse_record_date(record['date'])
    return (record_date.year, record_date.month) == year_month


def filter_records(records, search: str = None, month: str = None) -> list:
    """検索語と月でレコードを絞り込む（AND条件、入力順を保持）"""
    year_month = parse_month_filter(month) if month else None
    return [
        record for record in records or []
        if matches_search(record, search) and matches_month(record, year_month)
    ]


def monthly_total(records, today=None) -> float:
    """当月1日以降のレコードの合計時間

    画面の検索・月フィルターとは無関係に常に当月分を集計する。
    """
    first_day = start_of_month(today)
    return sum(
        float(record.get('total_hours') or 0)
        for record in records or []
        if parse_record_date(record['date']) >= first_day
    )
