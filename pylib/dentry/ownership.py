'''Decide which uid/gid the launched command will run as.

Precedence, resolved separately for the uid and the gid:
  1. explicit $PUID / $PGID values
  2. the owner of an existing collection, found by looking at a probe file
     inside the data directory (or at the data directory itself)
  3. the baked-in defaults (911:911)

Root is never an acceptable answer for the uid: an explicit PUID=0 is
refused outright, and a data directory owned by root (e.g. one docker
created for us) falls back to the default uid.  A gid of 0 is allowed.
'''

import os, pwd
from dataclasses import dataclass

import dentry.common as C


DEFAULT_PUID = 911
DEFAULT_PGID = 911

ROOT_HINT = '''    Hint: some NFS/SMB/FUSE/etc. filesystems force-remap or ignore all permissions;
          leave PUID/PGID unset, disable root_squash, or use values the drive prefers (default is %d:%d)'''


class RootNotAllowedError(C.EntrypointError): pass

class DataDirNotDirectoryError(C.EntrypointError): pass

NOT_A_DIR_HINT = '''    Hint: DATA_DIR must be a directory (usually a volume mounted at /data); check the -v / volumes: source
          path exists on the host as a folder, or point DATA_DIR somewhere else.'''


@dataclass
class Ids:
    uid: int
    gid: int
    how: str = ''

    def __str__(self): return f'{self.uid}:{self.gid}'


def parse_id(value, name):
    '''Returns None for blank values; otherwise the value must be a non-negative integer.'''
    if value is None: return None
    if isinstance(value, int): val = value
    else:
        value = str(value).strip()
        if not value: return None
        if not value.isdigit(): raise ValueError(f'{name} must be a non-negative number, got "{value}"')
        val = int(value)
    if val < 0: raise ValueError(f'{name} must be a non-negative number, got "{value}"')
    return val


def detect_owner(data_dir, probe_file='logs/errors.log'):
    '''Returns (uid, gid, path) of the first of probe_file or data_dir that exists, or None.'''
    if os.path.exists(data_dir) and not os.path.isdir(data_dir):
        raise DataDirNotDirectoryError(f'DATA_DIR is not a directory: {data_dir}', NOT_A_DIR_HINT)
    candidates = [os.path.join(data_dir, probe_file)] if probe_file else []
    candidates.append(data_dir)
    for path in candidates:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            continue
        return st.st_uid, st.st_gid, path
    return None


def resolve_ids(puid=None, pgid=None, data_dir='/data', probe_file='logs/errors.log',
                default_puid=DEFAULT_PUID, default_pgid=DEFAULT_PGID):
    explicit_uid = parse_id(puid, 'PUID')
    explicit_gid = parse_id(pgid, 'PGID')
    default_puid = parse_id(default_puid, 'DEFAULT_PUID')
    default_pgid = parse_id(default_pgid, 'DEFAULT_PGID')

    if explicit_uid == 0:
        raise RootNotAllowedError(
            f'Got PUID={puid} and PGID={pgid}, but running as root is not allowed; please change or unset PUID & PGID and try again.',
            ROOT_HINT % (default_puid, default_pgid))

    detected = detect_owner(data_dir, probe_file)
    if detected:
        detected_uid, detected_gid, detected_from = detected
        if detected_uid == 0:
            C.log_debug(f'{detected_from} is owned by root; using default uid {default_puid} instead')
            detected_uid = default_puid
        detected_how = f'owner of {detected_from}'
    else:
        detected_uid, detected_gid, detected_how = default_puid, default_pgid, 'defaults'

    uid = detected_uid if explicit_uid is None else explicit_uid
    gid = detected_gid if explicit_gid is None else explicit_gid

    if explicit_uid is not None and explicit_gid is not None: how = '$PUID/$PGID'
    elif explicit_uid is not None: how = f'$PUID, gid from {detected_how}'
    elif explicit_gid is not None: how = f'$PGID, uid from {detected_how}'
    else: how = detected_how

    ids = Ids(uid, gid, how)
    C.log_debug(f'resolved ids {ids} via {how}')
    return ids


def lookup_account(uid, fallback_name, fallback_home):
    '''Returns (name, home) for uid from the passwd database, or the fallbacks if it has no entry.'''
    try:
        pw = pwd.getpwuid(uid)
    except KeyError:
        return fallback_name, fallback_home
    return pw.pw_name, pw.pw_dir
