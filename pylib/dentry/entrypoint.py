#!/usr/bin/python3

'''Container entrypoint: fix up ownership, sanity check the environment, and
exec the requested command as an unprivileged user.

Intended as the image's ENTRYPOINT, running as root:

  - resolve the uid/gid to run as ($PUID/$PGID, else the owner of the
    existing collection in $DATA_DIR, else 911:911)
  - refuse to take over a mounted home directory
  - create $DATA_DIR and $PLAYWRIGHT_BROWSERS_PATH if needed and chown them
  - warn if running under QEMU emulation
  - check free disk space on / and $DATA_DIR (abort if / is critically low)
  - drop to the resolved ids and exec the command

All arguments belong to the launched command; see dentry.launcher for how
they are interpreted.  Exit status is 3 if we refuse to launch, otherwise
whatever the launched command returns.

'''

import os, sys

import dentry.common as C
import dentry.diskspace as DS
import dentry.emulation as EM
import dentry.entry_settings as S
import dentry.launcher as L
import dentry.ownership as O
import dentry.volumes as VOL


def init_log():
    level = C.getLevelNumber(S.get('log_level'))
    if level is None: raise ValueError(f'unknown log level: {S.get("log_level")}')
    C.init_log('entrypoint', logfile=S.get('log_file'), filter_level_stderr=level)


def prepare():
    '''Everything up to (not including) the privilege drop.  Returns the resolved Ids.'''
    data_dir = S.get('data_dir')
    browsers_dir = S.get('browsers_dir')

    ids = O.resolve_ids(S.get('puid'), S.get('pgid'), data_dir, S.get('probe_file'),
                        S.get('default_puid'), S.get('default_pgid'))
    VOL.check_not_home_dir(data_dir)
    VOL.prepare_dirs(ids, data_dir, browsers_dir)

    EM.warn_if_emulated()
    DS.check_disk_space(data_dir, pause_secs=S.get_int('data_low_pause', 5))

    os.environ['DATA_DIR'] = data_dir
    if browsers_dir: os.environ['PLAYWRIGHT_BROWSERS_PATH'] = browsers_dir
    return ids


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    S.init()
    init_log()

    try:
        ids = prepare()
    except C.EntrypointError as e:
        C.log_error(e.describe())
        return e.exit_code

    app_name = S.get('app_name')
    app_bin = L.find_app_binary(app_name)
    os.environ['ARCHIVEBOX_BIN_PATH'] = app_bin
    plan = L.plan_launch(args, app_name, app_bin)

    user_name, home = O.lookup_account(ids.uid, S.get('app_user'), S.get('data_dir'))
    L.drop_privileges(ids, user_name, home)
    L.exec_plan(plan)
    return 0


def main_cli():
    sys.exit(main())


if __name__ == '__main__':
    main_cli()
