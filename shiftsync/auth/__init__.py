from flask import Blueprint, current_app, render_template, request, redirect, url_for, session, flash, g
from dataclasses import dataclass, asdict
from functools import wraps
import logging
import secrets
import time
from ..backend import BackendError
from ..models import UserRole, build_email
from ..utils import is_safe_next_url
from ..utils.audit import log_audit_event

auth_bp = Blueprint('auth', __name__)

logger = logging.getLogger(__name__)

SESSION_KEY = 'session_context'
# 有効期限の少し前に更新する
EXPIRY_MARGIN_SECONDS = 30


@dataclass
class SessionContext:
    """サインイン中のユーザー情報（リクエストごとにCookieから復元）"""
    user_id: str
    email: str
    access_token: str
    refresh_token: str = ''
    expires_at: int = 0
    full_name: str = ''
    username: str = ''
    role: str = 'employee'

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or 'Funcionário'

    def is_expired(self, now: float = None) -> bool:
        if not self.expires_at:
            return False
        return (now or time.time()) >= self.expires_at - EXPIRY_MARGIN_SECONDS

    @classmethod
    def from_auth_session(cls, auth_session: dict, role: str):
        """バックエンドのサインイン結果から作成"""
        user = auth_session.get('user') or {}
        metadata = user.get('user_metadata') or {}
        expires_at = auth_session.get('expires_at')
        if not expires_at and auth_session.get('expires_in'):
            expires_at = int(time.time()) + int(auth_session['expires_in'])
        return cls(
            user_id=user.get('id'),
            email=user.get('email', ''),
            access_token=auth_session['access_token'],
            refresh_token=auth_session.get('refresh_token', ''),
            expires_at=int(expires_at or 0),
            full_name=metadata.get('full_name', ''),
            username=metadata.get('username', ''),
            role=role,
        )


def store_session_context(context: SessionContext):
    """セッションCookieに保存"""
    session.permanent = True
    session[SESSION_KEY] = asdict(context)


def check_csrf():
    """CSRF トークンの検証"""
    token = request.form.get('_csrf_token')
    if token and session.get('_csrf_token'):
        return secrets.compare_digest(token, session['_csrf_token'])
    return False


def login_required(f):
    """ログイン必須デコレーター"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('session_context') is None:
            return redirect(url_for('auth.login', next=request.path))
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """管理者権限必須デコレーター"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = g.get('session_context')
        if context is None:
            return redirect(url_for('auth.login', next=request.path))
        if not context.is_admin:
            flash("Acesso restrito a administradores", "danger")
            return redirect(url_for('overtime.index'))
        return f(*args, **kwargs)
    return decorated_function


def refresh_context(context: SessionContext):
    """期限切れのアクセストークンを一度だけ更新。失敗時はNone"""
    if not context.refresh_token:
        return None
    try:
        auth_session = current_app.backend.refresh_session(context.refresh_token)
    except BackendError as e:
        logger.info(f"Session refresh failed for {context.user_id}: {e.message}")
        return None

    refreshed = SessionContext.from_auth_session(auth_session, context.role)
    # メタデータが返らない場合は既存の表示名を引き継ぐ
    refreshed.full_name = refreshed.full_name or context.full_name
    refreshed.username = refreshed.username or context.username
    store_session_context(refreshed)
    return refreshed


@auth_bp.before_app_request
def load_user():
    """セッションコンテキストをリクエストコンテキストに読み込み"""
    data = session.get(SESSION_KEY)
    if not data:
        g.session_context = None
        return

    try:
        context = SessionContext(**data)
    except TypeError:
        session.pop(SESSION_KEY, None)
        g.session_context = None
        return

    if context.is_expired():
        context = refresh_context(context)
        if context is None:
            session.pop(SESSION_KEY, None)

    g.session_context = context


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """ログイン"""
    if g.get('session_context') is not None:
        return redirect(url_for('dashboard'))

    if request.method == 'POST':
        if not check_csrf():
            flash("Requisição inválida", "danger")
            return redirect(url_for('auth.login'))

        username = request.form.get('username', '').strip().lower()
        password = request.form.get('password', '')

        if not username or not password:
            flash("Informe usuário e senha", "danger")
            return render_template('login.html')

        try:
            auth_session = current_app.backend.sign_in_with_password(build_email(username), password)
            user_id = (auth_session.get('user') or {}).get('id')
            role = UserRole.get_role(user_id, access_token=auth_session['access_token'])
        except BackendError as e:
            flash(e.message, "danger")
            log_audit_event("login_failed", None, username)
            return render_template('login.html')

        context = SessionContext.from_auth_session(auth_session, role)
        context.username = context.username or username
        store_session_context(context)

        log_audit_event("login", context.user_id, context.display_name)
        flash("Login realizado com sucesso!", "success")

        next_page = request.args.get('next')
        if is_safe_next_url(next_page):
            return redirect(next_page)
        return redirect(url_for('dashboard'))

    return render_template('login.html')


@auth_bp.route('/logout')
@login_required
def logout():
    """ログアウト"""
    context = g.session_context

    try:
        current_app.backend.sign_out(context.access_token)
    except BackendError as e:
        # Cookieは必ず破棄する
        logger.warning(f"Sign-out failed for {context.user_id}: {e.message}")

    log_audit_event("logout", context.user_id, context.display_name)

    session.clear()
    g.session_context = None
    flash("Logout realizado. Até logo!", "info")
    return redirect(url_for('auth.login'))
