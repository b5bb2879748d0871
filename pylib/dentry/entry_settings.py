'''Settings for the container entrypoint.

common usage:

import dentry.entry_settings as S
S.init()
data_dir = S.get('data_dir')

init() builds a module-level singleton (S.s), so callers don't need to pass
a settings instance around.  It implicitly loads the settings file named by
$ENTRYPOINT_SETTINGS (default /etc/dentry.yaml), if that file exists.  Images
can use it to bake in site-specific defaults; environment variables passed
to "docker run" still win over the file.

'''

import dataclasses, os
import dentry.settings as KS


# ----- module level state

s = None             # singleton built by init()

DEFAULT_SETTINGS_FILE = '/etc/dentry.yaml'


# Environment variables are override_env_names: they beat anything the
# settings file says, as "docker run -e" is the more specific source.
SETTINGS = [
    KS.Setting('data_dir',       override_env_name='DATA_DIR',                   default='/data',            doc='collection data directory; created if missing and chowned to the resolved ids'),
    KS.Setting('browsers_dir',   override_env_name='PLAYWRIGHT_BROWSERS_PATH',   default='/browsers',        doc='directory holding the headless browser binaries; created if missing and chowned to the resolved ids'),
    KS.Setting('puid',           override_env_name='PUID',                                                   doc='explicit user id to run as.  Blank to auto-detect from the data directory.  0 (root) is refused.'),
    KS.Setting('pgid',           override_env_name='PGID',                                                   doc='explicit group id to run as.  Blank to auto-detect from the data directory.'),
    KS.Setting('default_puid',   override_env_name='DEFAULT_PUID',               default='911',              doc='user id to use when no data directory exists yet (or it is owned by root)'),
    KS.Setting('default_pgid',   override_env_name='DEFAULT_PGID',               default='911',              doc='group id to use when no data directory exists yet'),
    KS.Setting('probe_file',                                                     default='logs/errors.log',  doc='file (relative to data_dir) whose ownership identifies the owner of an existing collection'),
    KS.Setting('app_name',       override_env_name='ARCHIVEBOX_BIN',             default='archivebox',       doc='name of the main application binary; subcommands are passed to it'),
    KS.Setting('app_user',       override_env_name='ARCHIVEBOX_USER',            default='archivebox',       doc='account name to report for the resolved uid if it has no passwd entry'),
    KS.Setting('log_level',      override_env_name='ENTRYPOINT_LOG_LEVEL',       default='INFO',             doc='minimum level of messages written to stderr'),
    KS.Setting('log_file',       override_env_name='ENTRYPOINT_LOG_FILE',                                    doc='optional file to append entrypoint log messages to'),
    KS.Setting('data_low_pause', override_env_name='ENTRYPOINT_LOW_SPACE_PAUSE', default='5',                doc='seconds to pause after warning that the data volume is nearly full'),
]


# ---------- API

def init(files_to_load=None, debug=False):
    global s
    if files_to_load is None:
        settings_file = os.environ.get('ENTRYPOINT_SETTINGS', DEFAULT_SETTINGS_FILE)
        files_to_load = [settings_file] if settings_file and os.path.exists(settings_file) else []
    s = KS.Settings(add_Settings=[_fresh(i) for i in SETTINGS], debug=debug)
    s.parse_settings_file(files_to_load)
    return s


def get(name): return s.get(name)

def get_int(name, default=None): return s.get_int(name, default)


# ---------- internals

def _fresh(setting):
    '''Settings cache their resolved values, so each init() gets its own copies.'''
    return dataclasses.replace(setting, cached_value=None, how=None)
