import os
import pytest
from shiftsync.utils.audit import get_audit_log_path, get_client_info, log_audit_event


def test_audit_log_path_follows_app_log_dir(app, monkeypatch):
    monkeypatch.delenv("AUDIT_LOG_PATH")
    with app.app_context():
        assert get_audit_log_path() == os.path.join(app.config['LOG_DIR'], 'audit.log')


def test_audit_log_path_env_override(app, tmp_path):
    with app.app_context():
        assert get_audit_log_path() == str(tmp_path / "audit.log")


def test_audit_event_written_under_app_log_dir(app, monkeypatch):
    monkeypatch.delenv("AUDIT_LOG_PATH")
    with app.test_request_context('/', headers={'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64)'}):
        log_audit_event("login", "u1", "Ana Silva")

    with open(os.path.join(app.config['LOG_DIR'], 'audit.log'), encoding='utf-8') as f:
        line = f.read()
    assert "login | User: Ana Silva (ID: u1)" in line
    assert "Device: pc/Windows" in line


@pytest.mark.parametrize("user_agent, expected", [
    ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)", ('smartphone', 'iOS')),
    ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", ('tablet', 'iOS')),
    ("Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari/537.36", ('smartphone', 'Android')),
    ("Mozilla/5.0 (Linux; Android 13; SM-X200) Safari/537.36", ('tablet', 'Android')),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", ('pc', 'Windows')),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", ('pc', 'macOS')),
    ("Mozilla/5.0 (X11; Linux x86_64)", ('pc', 'Linux')),
    ("curl/8.0", ('pc', 'Unknown')),
])
def test_client_info(user_agent, expected):
    assert get_client_info(user_agent) == expected
