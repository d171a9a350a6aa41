from datetime import date, datetime

MINUTES_PER_DAY = 24 * 60


def normalize_time_str(time_str: str) -> str:
    """時刻文字列をHH:MM形式に正規化"""
    if not time_str:
        return ""

    try:
        time_str = time_str.strip()

        # "HH:MM:SS" -> "HH:MM"
        if time_str.count(':') == 2:
            time_str = ':'.join(time_str.split(':')[:2])

        # "H:MM" -> "HH:MM"
        if ':' in time_str:
            hour, minute = time_str.split(':')
            time_str = f"{hour.zfill(2)}:{minute.zfill(2)}"

        dt = datetime.strptime(time_str, '%H:%M')
        return dt.strftime('%H:%M')

    except ValueError:
        return time_str


def time_to_minutes(time_str: str) -> int:
    """HH:MM を0時からの経過分に変換"""
    dt = datetime.strptime(normalize_time_str(time_str), '%H:%M')
    return dt.hour * 60 + dt.minute


def calculate_hours(start_time: str, end_time: str) -> float:
    """開始・終了時刻から残業時間（時間単位）を計算

    終了が開始より前の場合は日付をまたいだ勤務として扱う。
    どちらかが未入力なら0を返す。
    """
    if not start_time or not end_time:
        return 0

    start_minutes = time_to_minutes(start_time)
    end_minutes = time_to_minutes(end_time)

    if end_minutes < start_minutes:
        end_minutes += MINUTES_PER_DAY

    return (end_minutes - start_minutes) / 60


def format_hours(hours) -> str:
    """表示用に小数点以下2桁でフォーマット"""
    return f"{float(hours or 0):.2f}"


def parse_record_date(value) -> date:
    """レコードの日付（YYYY-MM-DD、タイムスタンプ可）をdateに変換"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def start_of_month(today: date = None) -> date:
    """当月1日を取得"""
    today = today or date.today()
    return today.replace(day=1)


def format_date_for_display(value) -> str:
    """表示用の日付形式（dd/mm/yyyy）にフォーマット"""
    return parse_record_date(value).strftime('%d/%m/%Y')


def format_time_for_display(time_str: str) -> str:
    """表示用の時刻形式にフォーマット"""
    return normalize_time_str(time_str or '')
