"""マネージドバックエンド（認証・REST・RPC）のHTTPクライアント"""

import logging
import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class BackendError(Exception):
    """バックエンド呼び出しの失敗

    message はバックエンドが返したエラーメッセージをそのまま保持する。
    """

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status


def _error_message(resp) -> str:
    """エラーレスポンスからメッセージを取り出す"""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"

    if isinstance(body, dict):
        for key in ('message', 'msg', 'error_description', 'error'):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class BackendClient:
    """認証API・REST API・RPCへの単発リクエストを行うクライアント

    リトライは行わない。HTTP 400以上と通信エラーは BackendError になる。
    """

    def __init__(self, url: str, anon_key: str, timeout: float = DEFAULT_TIMEOUT, http=None):
        self.url = url.rstrip('/')
        self.anon_key = anon_key
        self.timeout = timeout
        self.http = http or requests.Session()

    def _headers(self, access_token: str = None, prefer: str = None) -> dict:
        headers = {
            'apikey': self.anon_key,
            'Authorization': f"Bearer {access_token or self.anon_key}",
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if prefer:
            headers['Prefer'] = prefer
        return headers

    def _request(self, method: str, path: str, access_token: str = None, prefer: str = None,
                 params=None, json=None):
        url = f"{self.url}{path}"
        logger.debug(f"Backend request: {method} {path}")
        try:
            resp = self.http.request(
                method,
                url,
                headers=self._headers(access_token, prefer),
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Backend request failed: {method} {path}: {e}")
            raise BackendError(f"Falha de comunicação com o servidor: {e}") from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning(f"Backend error: {method} {path} - Status: {resp.status_code} - {message}")
            raise BackendError(message, resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            logger.warning(f"Backend returned non-JSON body: {method} {path} - Status: {resp.status_code}")
            raise BackendError("Resposta inválida do servidor", resp.status_code) from e

    # === 認証 ===

    def sign_in_with_password(self, email: str, password: str) -> dict:
        """メールアドレスとパスワードでサインインし、セッションを返す"""
        return self._request(
            'POST', '/auth/v1/token',
            params={'grant_type': 'password'},
            json={'email': email, 'password': password},
        )

    def refresh_session(self, refresh_token: str) -> dict:
        """リフレッシュトークンでセッションを更新"""
        return self._request(
            'POST', '/auth/v1/token',
            params={'grant_type': 'refresh_token'},
            json={'refresh_token': refresh_token},
        )

    def sign_up(self, email: str, password: str, metadata: dict = None) -> dict:
        """認証アカウントを作成（metadataはユーザーメタデータとして保存される）"""
        return self._request(
            'POST', '/auth/v1/signup',
            json={'email': email, 'password': password, 'data': metadata or {}},
        )

    def get_user(self, access_token: str) -> dict:
        """アクセストークンに対応するユーザーを取得"""
        return self._request('GET', '/auth/v1/user', access_token=access_token)

    def sign_out(self, access_token: str):
        """サインアウト"""
        self._request('POST', '/auth/v1/logout', access_token=access_token)

    # === REST ===

    def select(self, table: str, columns: str = '*', filters: dict = None, order: str = None,
               access_token: str = None) -> list:
        """行を取得。filtersは {列: '演算子.値'} 形式"""
        params = {'select': columns}
        params.update(filters or {})
        if order:
            params['order'] = order
        return self._request('GET', f"/rest/v1/{table}", access_token=access_token, params=params) or []

    def insert(self, table: str, row: dict, access_token: str = None) -> list:
        """行を挿入し、挿入された行を返す"""
        return self._request(
            'POST', f"/rest/v1/{table}",
            access_token=access_token,
            prefer='return=representation',
            json=row,
        ) or []

    def delete(self, table: str, filters: dict, access_token: str = None) -> list:
        """条件に一致する行を削除し、削除された行を返す"""
        if not filters:
            raise ValueError("delete requires at least one filter")
        return self._request(
            'DELETE', f"/rest/v1/{table}",
            access_token=access_token,
            prefer='return=representation',
            params=dict(filters),
        ) or []

    def rpc(self, name: str, params: dict = None, access_token: str = None):
        """リモートプロシージャを呼び出す"""
        return self._request(
            'POST', f"/rest/v1/rpc/{name}",
            access_token=access_token,
            json=params or {},
        )
