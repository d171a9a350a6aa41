# ユーティリティモジュール

from urllib.parse import urlparse
from flask import request, redirect, url_for

__all__ = [
    "redirect_back",
    "is_safe_next_url",
]


def is_safe_next_url(target: str) -> bool:
    """同一サイト内の相対パスのみ許可"""
    if not target:
        return False
    parsed = urlparse(target)
    return not parsed.scheme and not parsed.netloc and target.startswith('/') and not target.startswith('//')


def redirect_back(endpoint: str, **values):
    """フィルター用のクエリパラメータを保持したままリダイレクトする"""
    for key in ("search", "month"):
        value = request.args.get(key) or request.form.get(key)
        if value:
            values[key] = value
    return redirect(url_for(endpoint, **values))
