from flask import Flask, g, request, redirect, url_for, flash, render_template, jsonify, session
from datetime import timedelta
import os
import logging
from logging.handlers import RotatingFileHandler
import time
import secrets
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DEFAULT_LOG_DIR = os.path.join(BASE_DIR, 'logs')


def create_app(config=None):
    """アプリケーションファクトリ"""
    app = Flask(__name__,
                template_folder=os.path.join(BASE_DIR, 'templates'),
                static_folder=os.path.join(BASE_DIR, 'static'))

    # 設定の読み込み（環境変数 → 引数の順に上書き）
    load_config(app, config)

    if not app.secret_key or app.secret_key == 'your_secret_key_here':
        raise RuntimeError("SECRET_KEYを環境変数で必ず設定してください")

    # ログ設定
    setup_logging(app)

    # バックエンド設定
    setup_backend(app)

    # リクエスト処理
    setup_request_handlers(app)
    register_error_handlers(app)

    # Jinja2環境の設定
    setup_jinja2(app)

    # Blueprintの登録
    from .auth import auth_bp
    from .overtime import overtime_bp
    from .admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(overtime_bp, url_prefix='/overtime')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    # コンテキストプロセッサーの設定
    setup_context_processors(app)

    @app.route('/')
    def index():
        """ランディングページ"""
        if g.get('session_context') is not None:
            return redirect(url_for('dashboard'))
        return render_template('landing.html')

    @app.route('/dashboard')
    def dashboard():
        """ロールに応じたダッシュボードへ振り分け"""
        context = g.get('session_context')
        if context is None:
            return redirect(url_for('auth.login'))
        if context.is_admin:
            return redirect(url_for('admin.overtime'))
        return redirect(url_for('overtime.index'))

    return app


def load_config(app, config=None):
    """設定の読み込み"""
    app.config.update(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'your_secret_key_here'),
        SUPABASE_URL=os.environ.get('SUPABASE_URL', ''),
        SUPABASE_ANON_KEY=os.environ.get('SUPABASE_ANON_KEY', ''),
        APP_EMAIL_DOMAIN=os.environ.get('APP_EMAIL_DOMAIN', 'shiftsync.app'),
        BACKEND_TIMEOUT=float(os.environ.get('BACKEND_TIMEOUT', 10)),
        LOG_DIR=os.environ.get('LOG_DIR', DEFAULT_LOG_DIR),
        PERMANENT_SESSION_LIFETIME=timedelta(
            days=int(os.environ.get('SESSION_LIFETIME_DAYS', 7))
        ),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE='Lax',
        BACKEND=None,
    )
    if config:
        app.config.update(config)


def setup_logging(app):
    """ログ設定"""
    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'app.log')

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=3, encoding='utf-8')
    handler.setFormatter(formatter)

    logger = logging.getLogger(__name__)
    # create_appが複数回呼ばれてもハンドラーを重複させない
    for existing in list(logger.handlers):
        if isinstance(existing, RotatingFileHandler):
            logger.removeHandler(existing)
            existing.close()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if app.debug else logging.INFO)


def setup_backend(app):
    """バックエンドクライアント設定"""
    from .backend import BackendClient

    backend = app.config.get('BACKEND')
    if backend is None:
        url = app.config['SUPABASE_URL']
        anon_key = app.config['SUPABASE_ANON_KEY']
        if not url or not anon_key:
            raise RuntimeError("SUPABASE_URLとSUPABASE_ANON_KEYを環境変数で必ず設定してください")
        backend = BackendClient(url, anon_key, timeout=app.config['BACKEND_TIMEOUT'])

    app.backend = backend


def setup_request_handlers(app):
    """リクエストハンドラー設定"""
    @app.before_request
    def log_request_start():
        g.start_time = time.time()
        logger = logging.getLogger(__name__)
        logger.info(f"Request start: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_request_end(response):
        if hasattr(g, 'start_time'):
            duration = time.time() - g.start_time
            logger = logging.getLogger(__name__)
            logger.info(
                f"Request end: {request.method} {request.path} - Status: {response.status_code} - Duration: {duration:.4f}s"
            )
        return response


def register_error_handlers(app):
    """アプリケーションのエラーハンドラーを登録"""
    from .backend import BackendError

    @app.errorhandler(BackendError)
    def handle_backend_error(e):
        logging.getLogger(__name__).warning(f"Unhandled backend error on {request.path}: {e.message}")
        if request.accept_mimetypes.best == 'application/json':
            return jsonify({'success': False, 'error': e.message}), 502
        flash(e.message, "danger")
        return redirect(url_for('index'))


def setup_jinja2(app):
    """Jinja2環境の設定"""
    from .utils.datetime_helpers import format_hours, format_date_for_display, format_time_for_display

    @app.template_global()
    def csrf_token():
        """CSRFトークンを生成してテンプレートで使用可能にする"""
        if '_csrf_token' not in session:
            session['_csrf_token'] = secrets.token_hex(16)
        return session['_csrf_token']

    app.add_template_filter(format_hours, 'hours')
    app.add_template_filter(format_date_for_display, 'display_date')
    app.add_template_filter(format_time_for_display, 'display_time')


def setup_context_processors(app):
    """コンテキストプロセッサー設定"""
    @app.context_processor
    def inject_session_context():
        return {'session_context': g.get('session_context')}


# テスト用に関数を公開
from .auth import check_csrf, login_required, admin_required, SessionContext
from .backend import BackendClient, BackendError
from .utils.datetime_helpers import calculate_hours
from .utils.aggregation import filter_records, monthly_total
from .utils.validators import is_valid_time, validate_overtime_input

__all__ = [
    "create_app",
    "check_csrf",
    "login_required",
    "admin_required",
    "SessionContext",
    "BackendClient",
    "BackendError",
    "calculate_hours",
    "filter_records",
    "monthly_total",
    "is_valid_time",
    "validate_overtime_input",
]
