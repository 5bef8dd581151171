import os

from config import resolve_log_dir, load_secret_key


def test_log_dir_prefers_env(tmp_path, monkeypatch):
    monkeypatch.setenv('EMS_LOG_DIR', str(tmp_path / 'custom'))

    assert resolve_log_dir(tmp_path / 'app') == tmp_path / 'custom'
    assert (tmp_path / 'custom').is_dir()


def test_log_dir_falls_back_to_base_dir_when_home_is_unusable(tmp_path, monkeypatch):
    not_a_dir = tmp_path / 'home-file'
    not_a_dir.write_text('')
    monkeypatch.delenv('EMS_LOG_DIR', raising=False)
    monkeypatch.setenv('HOME', str(not_a_dir))
    monkeypatch.setenv('APPDATA', str(not_a_dir))

    assert resolve_log_dir(tmp_path / 'app') == tmp_path / 'app' / 'logs'


def test_secret_key_is_generated_once_then_reused(tmp_path):
    beside_exe = tmp_path / 'exe' / '.secret_key'
    per_user = tmp_path / 'user' / '.secret_key'

    first = load_secret_key(beside_exe, per_user)

    assert len(first) == 64
    assert per_user.read_text() == first
    assert not beside_exe.exists()
    assert load_secret_key(beside_exe, per_user) == first
    if os.name != 'nt':
        assert per_user.stat().st_mode & 0o777 == 0o600


def test_secret_key_file_beside_executable_wins(tmp_path):
    beside_exe = tmp_path / '.secret_key'
    beside_exe.write_text('  fixed-key\n')

    assert load_secret_key(beside_exe, tmp_path / 'user' / '.secret_key') == 'fixed-key'
