from flask import current_app, g
from ..utils.datetime_helpers import calculate_hours, normalize_time_str

OVERTIME_TABLE = 'overtime_records'
PROFILES_TABLE = 'profiles'
ROLES_TABLE = 'user_roles'
DELETE_USER_RPC = 'delete_user'

RECORD_ORDER = 'date.desc,start_time.desc'


class BaseModel:
    """ベースモデルクラス"""

    @staticmethod
    def get_backend():
        """バックエンドクライアントを取得"""
        return current_app.backend

    @staticmethod
    def get_access_token():
        """サインイン中のユーザーのアクセストークンを取得"""
        context = g.get('session_context')
        return context.access_token if context else None


class OvertimeRecord(BaseModel):
    """残業記録モデル"""

    @staticmethod
    def create(user_id, date, start_time, end_time, justification):
        """残業記録を作成（合計時間は開始・終了時刻から算出）"""
        start_time = normalize_time_str(start_time)
        end_time = normalize_time_str(end_time)
        rows = OvertimeRecord.get_backend().insert(OVERTIME_TABLE, {
            'user_id': user_id,
            'date': date,
            'start_time': start_time,
            'end_time': end_time,
            'total_hours': calculate_hours(start_time, end_time),
            'justification': justification,
        }, access_token=OvertimeRecord.get_access_token())
        return rows[0] if rows else None

    @staticmethod
    def get_by_user(user_id):
        """ユーザーの残業記録を取得（日付・開始時刻の降順）"""
        return OvertimeRecord.get_backend().select(
            OVERTIME_TABLE,
            filters={'user_id': f"eq.{user_id}"},
            order=RECORD_ORDER,
            access_token=OvertimeRecord.get_access_token(),
        )

    @staticmethod
    def get_all_with_profiles():
        """全従業員の残業記録をプロフィール付きで取得"""
        return OvertimeRecord.get_backend().select(
            OVERTIME_TABLE,
            columns='*,profiles(full_name,username)',
            order=RECORD_ORDER,
            access_token=OvertimeRecord.get_access_token(),
        )

    @staticmethod
    def get_hours_since(since, user_id=None):
        """指定日以降の記録の合計時間列を取得"""
        filters = {'date': f"gte.{since.isoformat()}"}
        if user_id:
            filters['user_id'] = f"eq.{user_id}"
        return OvertimeRecord.get_backend().select(
            OVERTIME_TABLE,
            columns='date,total_hours',
            filters=filters,
            access_token=OvertimeRecord.get_access_token(),
        )

    @staticmethod
    def delete(record_id, user_id):
        """本人の残業記録を削除。削除できたかを返す"""
        rows = OvertimeRecord.get_backend().delete(
            OVERTIME_TABLE,
            {'id': f"eq.{record_id}", 'user_id': f"eq.{user_id}"},
            access_token=OvertimeRecord.get_access_token(),
        )
        return len(rows) > 0


class Profile(BaseModel):
    """プロフィールモデル"""

    @staticmethod
    def get_by_id(user_id):
        """IDでプロフィールを取得"""
        rows = Profile.get_backend().select(
            PROFILES_TABLE,
            filters={'id': f"eq.{user_id}"},
            access_token=Profile.get_access_token(),
        )
        return rows[0] if rows else None

    @staticmethod
    def get_employees():
        """従業員ロールのプロフィール一覧を取得（氏名順）"""
        return Profile.get_backend().select(
            PROFILES_TABLE,
            columns='*,user_roles!inner(role)',
            filters={'user_roles.role': 'eq.employee'},
            order='full_name',
            access_token=Profile.get_access_token(),
        )

    @staticmethod
    def create_employee(full_name, username, password):
        """従業員の認証アカウントを作成

        プロフィールとロールの行はバックエンド側で作成される。
        """
        email = build_email(username)
        return Profile.get_backend().sign_up(email, password, {
            'username': username,
            'full_name': full_name,
        })

    @staticmethod
    def delete(user_id):
        """従業員と認証アカウントを削除"""
        Profile.get_backend().rpc(
            DELETE_USER_RPC,
            {'user_id': user_id},
            access_token=Profile.get_access_token(),
        )


class UserRole(BaseModel):
    """ロールモデル"""

    @staticmethod
    def get_role(user_id, access_token=None):
        """ユーザーのロールを取得（adminが1件でもあればadmin）"""
        rows = UserRole.get_backend().select(
            ROLES_TABLE,
            columns='role',
            filters={'user_id': f"eq.{user_id}"},
            access_token=access_token or UserRole.get_access_token(),
        )
        roles = {row.get('role') for row in rows}
        return 'admin' if 'admin' in roles else 'employee'


def build_email(username: str) -> str:
    """ユーザー名からサインイン用のメールアドレスを組み立てる"""
    return f"{username}@{current_app.config['APP_EMAIL_DOMAIN']}"
