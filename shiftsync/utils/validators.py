import re
from datetime import date, datetime
from .datetime_helpers import calculate_hours, normalize_time_str

USERNAME_PATTERN = r'^[a-z0-9._-]{3,32}$'
MAX_JUSTIFICATION_LENGTH = 500
MAX_NAME_LENGTH = 100
MIN_PASSWORD_LENGTH = 6


def is_valid_time(time_str: str) -> bool:
    """時刻形式（HH:MM）の検証"""
    if not time_str:
        return False

    try:
        datetime.strptime(time_str, '%H:%M')
        return True
    except ValueError:
        return False


def is_valid_date(date_str: str) -> bool:
    """日付形式（YYYY-MM-DD）の検証"""
    if not date_str:
        return False

    try:
        date.fromisoformat(date_str)
        return True
    except ValueError:
        return False


def is_valid_username(username: str) -> bool:
    """ユーザー名の検証（メールアドレスのローカル部として使用する）"""
    if not username:
        return False
    return bool(re.match(USERNAME_PATTERN, username))


def sanitize_text_input(text: str, max_length: int = 1000) -> str:
    """テキスト入力のサニタイズ"""
    if not text:
        return ""

    text = text.strip()

    if len(text) > max_length:
        text = text[:max_length]

    # 制御文字の除去（タブ、改行は保持）
    text = ''.join(char for char in text if ord(char) >= 32 or char in '\t\n\r')

    return text


def validate_overtime_input(record_date: str, start_time: str, end_time: str, justification: str) -> tuple[bool, str]:
    """残業登録フォームの検証

    バックエンドへ送信する前に行う。戻り値は (成否, メッセージ)。
    """
    if not record_date or not start_time or not end_time:
        return False, "Preencha data, hora de início e hora de fim"

    if not is_valid_date(record_date):
        return False, "Data inválida"

    start_time = normalize_time_str(start_time)
    end_time = normalize_time_str(end_time)
    if not is_valid_time(start_time) or not is_valid_time(end_time):
        return False, "Horário inválido (use HH:MM)"

    if calculate_hours(start_time, end_time) <= 0:
        return False, "Hora de fim deve ser após a hora de início"

    # 制御文字を除去した後の内容で判定する
    justification = sanitize_text_input(justification)
    if not justification:
        return False, "Informe a justificativa"

    if len(justification) > MAX_JUSTIFICATION_LENGTH:
        return False, f"A justificativa deve ter no máximo {MAX_JUSTIFICATION_LENGTH} caracteres"

    return True, ""


def validate_employee_input(full_name: str, username: str, password: str) -> tuple[bool, str]:
    """従業員登録フォームの検証"""
    if not full_name or not full_name.strip():
        return False, "Informe o nome completo"

    full_name = full_name.strip()
    if len(full_name) > MAX_NAME_LENGTH:
        return False, f"O nome deve ter no máximo {MAX_NAME_LENGTH} caracteres"

    # HTMLタグやスクリプトの検出
    if '<' in full_name or '>' in full_name:
        return False, "O nome contém caracteres inválidos"

    if not is_valid_username(username):
        return False, "Usuário inválido (3 a 32 caracteres: letras minúsculas, números, '.', '_' ou '-')"

    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False, f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres"

    return True, ""
