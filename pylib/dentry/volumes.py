'''Prepare the data and browser-binaries directories before the handoff.

Both directories must end up owned by the resolved ids; the launched
command runs unprivileged and needs to write to them.  Directories we
create are chowned as we go.  Existing trees are walked on every start,
but only entries with the wrong owner are changed, so a collection that is
already right costs a walk and no writes.
'''

import os

import dentry.common as C
import dentry.varz as V


# Entries that only show up in the root of someone's home directory.  If the
# data dir has them, the user almost certainly mounted ~ rather than a
# dedicated collection directory, and chowning it would be a disaster.
HOME_DIR_MARKERS = ['Documents', '.config', 'Desktop', 'Downloads', 'Library', 'Applications']

HOME_DIR_HINT = '''    Hint: create a new, empty folder for the collection and mount that as the data directory instead, e.g.
          $ mkdir -p ~/archivebox/data && cd ~/archivebox/data
          $ docker run -v "$PWD":/data -it archivebox/archivebox init'''


class HomeDirMountedError(C.EntrypointError): pass


def check_not_home_dir(data_dir):
    found = [i for i in HOME_DIR_MARKERS if os.path.isdir(os.path.join(data_dir, i))]
    if found:
        raise HomeDirMountedError(
            f'{data_dir} looks like a home directory (contains {", ".join(found)}); refusing to take ownership of it.',
            HOME_DIR_HINT)


def owned_by(st, uid, gid):
    return st.st_uid == uid and st.st_gid == gid


def ensure_dir(path, ids):
    '''mkdir -p, chowning each directory we create to ids.  Returns True if anything was created.'''
    missing = []
    probe = os.path.abspath(path)
    while not os.path.isdir(probe):
        missing.append(probe)
        parent = os.path.dirname(probe)
        if parent == probe: break
        probe = parent
    for d in reversed(missing):
        os.mkdir(d)
        os.chown(d, ids.uid, ids.gid)
        C.log_debug(f'created {d} owned by {ids}')
    return bool(missing)


def chown_tree(top, uid, gid):
    '''Chown every entry under top not already owned by uid:gid.  Returns the number of entries changed.

       top itself is chowned through any symlink (volume paths are often
       links to the real mount); entries inside are lchown'd, never followed.'''
    count = 0
    if not owned_by(os.stat(top), uid, gid):
        os.chown(top, uid, gid)
        count += 1
    for dirpath, dirnames, filenames in os.walk(top, followlinks=False):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            if owned_by(os.lstat(path), uid, gid): continue
            os.lchown(path, uid, gid)
            count += 1
    V.bump('chown-entries', count)
    return count


def take_ownership(path, ids):
    if not owned_by(os.stat(path), ids.uid, ids.gid):
        C.log_info(f'Change in ownership detected for {path}; chowning existing files to {ids}, this could take some time...')
    count = chown_tree(path, ids.uid, ids.gid)
    C.log_debug(f'{count} entries under {path} chowned to {ids}')
    return count


def prepare_dirs(ids, data_dir, browsers_dir=None):
    '''Create (if needed) and chown the data directory (with its logs/ subdir) and the browsers directory.'''
    ensure_dir(data_dir, ids)
    take_ownership(data_dir, ids)
    ensure_dir(os.path.join(data_dir, 'logs'), ids)

    if browsers_dir:
        ensure_dir(browsers_dir, ids)
        take_ownership(browsers_dir, ids)
