import os
from datetime import datetime
from flask import request, current_app, has_app_context, has_request_context

DEFAULT_LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'logs')

# (User-Agentに含まれる語, OS名) 先に一致したものを採用
OS_MARKERS = (
    (('android',), 'Android'),
    (('iphone', 'ipad', 'ios'), 'iOS'),
    (('windows',), 'Windows'),
    (('mac os x', 'macintosh'), 'macOS'),
    (('linux',), 'Linux'),
)
TABLET_MARKERS = ('ipad', 'tablet')
PHONE_MARKERS = ('iphone', 'mobile')


def get_audit_log_path() -> str:
    """監査ログファイルのパスを取得

    AUDIT_LOG_PATH が最優先。アプリコンテキスト内ではアプリ設定の LOG_DIR を使う。
    """
    if os.environ.get('AUDIT_LOG_PATH'):
        return os.environ['AUDIT_LOG_PATH']
    if has_app_context():
        log_dir = current_app.config.get('LOG_DIR') or DEFAULT_LOG_DIR
    else:
        log_dir = os.environ.get('LOG_DIR', DEFAULT_LOG_DIR)
    return os.path.join(log_dir, 'audit.log')


def detect_os(user_agent: str) -> str:
    ua = user_agent.lower()
    for markers, os_name in OS_MARKERS:
        if any(marker in ua for marker in markers):
            return os_name
    return 'Unknown'


def detect_device(user_agent: str) -> str:
    """tablet / smartphone / pc のいずれか"""
    ua = user_agent.lower()
    if any(marker in ua for marker in TABLET_MARKERS):
        return 'tablet'
    if 'android' in ua:
        # AndroidはMobile表記の有無で端末種別が分かれる
        return 'smartphone' if 'mobile' in ua else 'tablet'
    if any(marker in ua for marker in PHONE_MARKERS):
        return 'smartphone'
    return 'pc'


def get_client_info(user_agent: str = None) -> tuple[str, str]:
    """User-Agentから (デバイス, OS) を推測"""
    if not user_agent:
        user_agent = request.headers.get('User-Agent', '') if has_request_context() else ''
    return detect_device(user_agent), detect_os(user_agent)


def log_audit_event(action: str, user_id: str = None, user_name: str = None, details: str = None):
    """監査ログを記録"""
    try:
        audit_log_path = get_audit_log_path()
        os.makedirs(os.path.dirname(audit_log_path), exist_ok=True)

        ip_address = 'N/A'
        device = 'N/A'
        os_name = 'N/A'

        if has_request_context():
            ip_address = request.remote_addr or 'N/A'
            device, os_name = get_client_info(request.headers.get('User-Agent', ''))

        timestamp = datetime.now().isoformat()
        line = f"[{timestamp}] {action} | User: {user_name or 'N/A'} (ID: {user_id or 'N/A'}) | IP: {ip_address} | Device: {device}/{os_name}"
        if details:
            line += f" | Details: {details}"
        line += "\n"

        with open(audit_log_path, 'a', encoding='utf-8') as f:
            f.write(line)

    except OSError as e:
        # 監査ログの記録に失敗してもリクエストは継続する
        current_app.logger.error(f"Failed to write audit log: {str(e)}")


def clear_audit_log() -> bool:
    """監査ログをクリア"""
    audit_log_path = get_audit_log_path()
    try:
        if os.path.exists(audit_log_path):
            os.remove(audit_log_path)
        return True
    except OSError:
        return False
