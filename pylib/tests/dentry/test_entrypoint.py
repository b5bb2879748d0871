'''End-to-end runs of entrypoint.main(), with the exec and the privilege drop faked out.'''

import os, pytest

import context_dentry     # fix path to includes work as expected in tests
import dentry.diskspace as DS
import dentry.emulation as EM
import dentry.entry_settings as ES
import dentry.entrypoint as E
import dentry.launcher as L


HEALTHY = DS.DiskUsage('-', 30, 80_000_000)
MY_UID, MY_GID = os.getuid(), os.getgid()
# Explicit ids matching the test runner, so the real chowns succeed; root's
# own uid is refused, so running these tests as root uses a fake instead.
TEST_UID = MY_UID if MY_UID != 0 else 1000


class Launch:
    '''Collects what main() would have dropped to and exec'd.'''
    def __init__(self): self.dropped, self.execs = [], []


@pytest.fixture
def env(tmp_path, monkeypatch):
    for setting in ES.SETTINGS:
        if setting.override_env_name: monkeypatch.delenv(setting.override_env_name, raising=False)
    for var in ['IN_QEMU', 'ARCHIVEBOX_BIN_PATH', 'HOME', 'USER', 'LOGNAME']: monkeypatch.setenv(var, 'before')
    monkeypatch.setenv('ENTRYPOINT_SETTINGS', str(tmp_path / 'absent.yaml'))
    monkeypatch.setenv('DATA_DIR', str(tmp_path / 'data'))
    monkeypatch.setenv('PLAYWRIGHT_BROWSERS_PATH', str(tmp_path / 'browsers'))
    monkeypatch.setenv('PUID', str(TEST_UID))
    monkeypatch.setenv('PGID', str(MY_GID))

    if MY_UID == 0:   # don't really hand test files to a made-up user
        monkeypatch.setattr(os, 'chown', lambda *a: None)
        monkeypatch.setattr(os, 'lchown', lambda *a: None)

    monkeypatch.setattr(EM, 'mapped_paths', lambda pid: ['/sbin/tini'])
    monkeypatch.setattr(DS, 'disk_usage', lambda path: HEALTHY)
    monkeypatch.setattr(DS, 'df_listing', lambda path: '(df)')
    monkeypatch.setattr(DS.time, 'sleep', lambda secs: None)
    monkeypatch.setattr(L, 'find_app_binary', lambda name: f'/venv/bin/{name}')

    launch = Launch()
    monkeypatch.setattr(L, 'drop_privileges', lambda ids, name, home: launch.dropped.append((ids.uid, ids.gid)))
    monkeypatch.setattr(L.os, 'execvp', lambda file, args: launch.execs.append(args))
    return launch


# ---------- tests

def test_subcommand_launch(env, tmp_path):
    assert E.main(['add', '--depth=1', 'https://example.com']) == 0
    assert env.dropped == [(TEST_UID, MY_GID)]
    assert env.execs == [['/venv/bin/archivebox', 'add', '--depth=1', 'https://example.com']]

    assert os.path.isdir(tmp_path / 'data' / 'logs')
    assert os.path.isdir(tmp_path / 'browsers')
    if MY_UID != 0:
        for d in ['data', 'data/logs', 'browsers']:
            st = os.stat(tmp_path / d)
            assert (st.st_uid, st.st_gid) == (MY_UID, MY_GID)

    assert os.environ['DATA_DIR'] == str(tmp_path / 'data')
    assert os.environ['ARCHIVEBOX_BIN_PATH'] == '/venv/bin/archivebox'
    assert os.environ['IN_QEMU'] == 'False'


def test_verbatim_launch(env):
    assert E.main(['/bin/bash', '-c', 'echo hi']) == 0
    assert env.execs == [['/bin/bash', '-c', "exec /bin/bash -c 'echo hi'"]]


def test_no_args_runs_app(env):
    assert E.main([]) == 0
    assert env.execs == [['/venv/bin/archivebox']]


def test_root_disk_full_is_fatal(env, monkeypatch, capsys):
    monkeypatch.setattr(DS, 'disk_usage', lambda path: DS.DiskUsage(path, 100, 50_000) if path == '/' else HEALTHY)
    assert E.main(['server']) == 3
    assert env.execs == []
    assert env.dropped == []
    err = capsys.readouterr().err
    assert 'ERROR: Docker root filesystem is completely out of space!' in err
    assert 'docker system prune' in err


def test_data_disk_full_is_not_fatal(env, monkeypatch, capsys):
    monkeypatch.setattr(DS, 'disk_usage', lambda path: HEALTHY if path == '/' else DS.DiskUsage(path, 100, 50_000))
    assert E.main(['server']) == 0
    assert len(env.execs) == 1
    assert 'data volume is completely out of space' in capsys.readouterr().err


def test_emulation_warning_keeps_going(env, monkeypatch, capsys):
    monkeypatch.setattr(EM, 'mapped_paths', lambda pid: ['/usr/bin/qemu-aarch64'])
    assert E.main(['version']) == 0
    assert env.execs == [['/venv/bin/archivebox', 'version']]
    assert os.environ['IN_QEMU'] == 'True'
    assert 'QEMU emulation' in capsys.readouterr().err


def test_root_puid_refused(env, monkeypatch, capsys):
    monkeypatch.setenv('PUID', '0')
    assert E.main(['server']) == 3
    assert env.execs == []
    assert 'not allowed' in capsys.readouterr().err


def test_home_dir_refused(env, tmp_path):
    (tmp_path / 'data' / 'Desktop').mkdir(parents=True)
    assert E.main(['server']) == 3
    assert env.execs == []


def test_bad_puid_fails_fast(env, monkeypatch):
    monkeypatch.setenv('PUID', 'nobody')
    with pytest.raises(ValueError):
        E.main(['server'])
    assert env.execs == []


def test_bad_log_level(env, monkeypatch):
    monkeypatch.setenv('ENTRYPOINT_LOG_LEVEL', 'chatty')
    with pytest.raises(ValueError):
        E.main(['server'])


def test_settings_file(env, tmp_path, monkeypatch):
    settings_file = tmp_path / 'dentry.yaml'
    settings_file.write_text(f'app_name: otherapp\nbrowsers_dir: {tmp_path / "b2"}\n')
    monkeypatch.setenv('ENTRYPOINT_SETTINGS', str(settings_file))
    monkeypatch.delenv('PLAYWRIGHT_BROWSERS_PATH')

    assert E.main(['otherapp', 'shell']) == 0
    assert env.execs == [['/bin/bash', '-c', 'exec otherapp shell']]
    assert os.path.isdir(tmp_path / 'b2')
    assert os.environ['PLAYWRIGHT_BROWSERS_PATH'] == str(tmp_path / 'b2')


def test_data_dir_is_a_file(env, tmp_path, capsys):
    (tmp_path / 'data').write_text('not a directory')
    assert E.main(['server']) == 3
    assert env.execs == []
    assert 'DATA_DIR is not a directory' in capsys.readouterr().err
