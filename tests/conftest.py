import itertools
from dataclasses import asdict
import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
os.environ.setdefault("SECRET_KEY", "test-secret")

from shiftsync import create_app, SessionContext
from shiftsync.backend import BackendError

EMAIL_DOMAIN = "shiftsync.app"
CSRF_TOKEN = "token"


class FakeBackend:
    """テスト用のインメモリバックエンド（BackendClientと同じインターフェース）"""

    def __init__(self):
        self.tables = {'overtime_records': [], 'profiles': [], 'user_roles': []}
        self.users = {}
        self.calls = []
        self.fail = {}
        self._ids = itertools.count(1)

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise BackendError(self.fail[name], 400)

    def called(self, name):
        return [call for call in self.calls if call[0] == name]

    def add_user(self, username, full_name, password="secret123", role="employee"):
        user_id = f"user-{next(self._ids)}"
        email = f"{username}@{EMAIL_DOMAIN}"
        self.users[email] = {
            'id': user_id,
            'email': email,
            'password': password,
            'user_metadata': {'username': username, 'full_name': full_name},
        }
        self.tables['profiles'].append({
            'id': user_id,
            'full_name': full_name,
            'username': username,
            'created_at': datetime.now().isoformat(),
        })
        self.tables['user_roles'].append({'user_id': user_id, 'role': role})
        return user_id

    def add_record(self, user_id, date, start_time, end_time, total_hours, justification="Fechamento"):
        record = {
            'id': f"rec-{next(self._ids)}",
            'user_id': user_id,
            'date': date,
            'start_time': start_time,
            'end_time': end_time,
            'total_hours': total_hours,
            'justification': justification,
            'created_at': datetime.now().isoformat(),
        }
        self.tables['overtime_records'].append(record)
        return record['id']

    def _user_by_id(self, user_id):
        return next((u for u in self.users.values() if u['id'] == user_id), None)

    def _auth_session(self, user):
        return {
            'access_token': f"token-{user['id']}",
            'refresh_token': f"refresh-{user['id']}",
            'expires_in': 3600,
            'user': {k: v for k, v in user.items() if k != 'password'},
        }

    @staticmethod
    def _matches(row, filters):
        for key, expr in (filters or {}).items():
            if '.' in key:
                continue
            op, value = expr.split('.', 1)
            current = str(row.get(key))
            if op == 'eq' and current != value:
                return False
            if op == 'gte' and current < value:
                return False
        return True

    # === 認証 ===

    def sign_in_with_password(self, email, password):
        self._call('sign_in_with_password', email)
        user = self.users.get(email)
        if not user or user['password'] != password:
            raise BackendError("Invalid login credentials", 400)
        return self._auth_session(user)

    def refresh_session(self, refresh_token):
        self._call('refresh_session', refresh_token)
        user = self._user_by_id(refresh_token.replace('refresh-', '', 1))
        if not user:
            raise BackendError("Invalid Refresh Token", 400)
        return self._auth_session(user)

    def sign_up(self, email, password, metadata=None):
        self._call('sign_up', email, metadata)
        if email in self.users:
            raise BackendError("User already registered", 422)
        metadata = metadata or {}
        user_id = self.add_user(metadata.get('username'), metadata.get('full_name'), password)
        return {'id': user_id, 'email': email}

    def get_user(self, access_token):
        self._call('get_user', access_token)
        return self._user_by_id(access_token.replace('token-', '', 1))

    def sign_out(self, access_token):
        self._call('sign_out', access_token)

    # === REST ===

    def select(self, table, columns='*', filters=None, order=None, access_token=None):
        self._call('select', table, filters)
        rows = [dict(row) for row in self.tables[table] if self._matches(row, filters)]

        if 'profiles(' in columns:
            for row in rows:
                profile = next((p for p in self.tables['profiles'] if p['id'] == row['user_id']), None)
                row['profiles'] = {
                    'full_name': profile['full_name'],
                    'username': profile['username'],
                } if profile else None

        if 'user_roles!inner' in columns:
            wanted = (filters or {}).get('user_roles.role', '').replace('eq.', '', 1)
            joined = []
            for row in rows:
                roles = [r for r in self.tables['user_roles']
                         if r['user_id'] == row['id'] and (not wanted or r['role'] == wanted)]
                if roles:
                    row['user_roles'] = [{'role': r['role']} for r in roles]
                    joined.append(row)
            rows = joined

        for part in reversed((order or '').split(',')):
            if not part:
                continue
            column, _, direction = part.partition('.')
            rows.sort(key=lambda r: str(r.get(column) or ''), reverse=direction == 'desc')
        return rows

    def insert(self, table, row, access_token=None):
        self._call('insert', table, row)
        stored = dict(row, id=f"rec-{next(self._ids)}", created_at=datetime.now().isoformat())
        self.tables[table].append(stored)
        return [dict(stored)]

    def delete(self, table, filters, access_token=None):
        self._call('delete', table, filters)
        removed = [row for row in self.tables[table] if self._matches(row, filters)]
        self.tables[table] = [row for row in self.tables[table] if row not in removed]
        return removed

    def rpc(self, name, params=None, access_token=None):
        self._call('rpc', name, params)
        if name == 'delete_user':
            user_id = params['user_id']
            self.tables['profiles'] = [p for p in self.tables['profiles'] if p['id'] != user_id]
            self.tables['user_roles'] = [r for r in self.tables['user_roles'] if r['user_id'] != user_id]
            self.users = {e: u for e, u in self.users.items() if u['id'] != user_id}
        return None


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def app(backend, tmp_path, monkeypatch):
    monkeypatch.setenv("AUDIT_LOG_PATH", str(tmp_path / "audit.log"))
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'BACKEND': backend,
        'APP_EMAIL_DOMAIN': EMAIL_DOMAIN,
        'LOG_DIR': str(tmp_path / "logs"),
    })
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess['_csrf_token'] = CSRF_TOKEN
        yield client


def sign_in(client, backend, user_id, role='employee', expires_at=None):
    """セッションCookieにサインイン状態を直接書き込む"""
    user = backend._user_by_id(user_id)
    context = SessionContext(
        user_id=user_id,
        email=user['email'],
        access_token=f"token-{user_id}",
        refresh_token=f"refresh-{user_id}",
        expires_at=expires_at if expires_at is not None else int(datetime.now().timestamp()) + 3600,
        full_name=user['user_metadata']['full_name'],
        username=user['user_metadata']['username'],
        role=role,
    )
    with client.session_transaction() as sess:
        sess['session_context'] = asdict(context)
    return context


@pytest.fixture
def employee(backend):
    return backend.add_user("ana", "Ana Silva")


@pytest.fixture
def admin(backend):
    return backend.add_user("chefe", "Carla Chefe", role="admin")


@pytest.fixture
def employee_client(client, backend, employee):
    sign_in(client, backend, employee)
    return client


@pytest.fixture
def admin_client(client, backend, admin):
    sign_in(client, backend, admin, role='admin')
    return client
