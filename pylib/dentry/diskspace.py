'''Check free disk space on the docker root filesystem and the data volume.

The two volumes are deliberately treated differently:

  root filesystem (/):
    < 100MB available               -> fatal: DiskSpaceError (exit 3)
    >= 99% used, or < 500MB avail   -> warning

  data volume:
    < 100MB available               -> warning, then a short pause so it gets noticed
    >= 99% used, or root < 500MB    -> warning

Running out of space on / breaks the container itself (temp files, the
browsers, sqlite journals), so there's no point continuing.  A full data
volume only breaks new archiving, and the user may well be starting the
container precisely to look at or clean up what's there.
'''

import math, time
from dataclasses import dataclass
import psutil

import dentry.common as C
import dentry.varz as V


CRITICAL_AVAIL_KB = 100_000
LOW_AVAIL_KB = 500_000
FULL_USED_PCT = 99

ROOT_HINT = '''    you need to free up at least 100Mb in your Docker VM to continue:
    $ docker system prune'''
ROOT_LOW_HINT = '''    you may need to free up space in your Docker VM soon:
    $ docker system prune'''
DATA_HINT = '''    you need to free up at least 100Mb on the drive holding your data directory
    $ ncdu -x data'''
DATA_LOW_HINT = '''    you may need to free up space on the drive holding your data directory soon
    $ ncdu -x data'''


class DiskSpaceError(C.EntrypointError): pass


@dataclass
class DiskUsage:
    path: str
    used_pct: int
    avail_kb: int

    def __str__(self): return f'{self.used_pct}% used, {self.avail_kb}KB available on {self.path}'


def disk_usage(path):
    '''Usage as df reports it: percent used rounded up, and space available to non-root users.'''
    du = psutil.disk_usage(path)
    usable = du.used + du.free
    used_pct = math.ceil(du.used * 100 / usable) if usable else 0
    return DiskUsage(path, used_pct, du.free // 1024)


def df_listing(path):
    return C.popener(['df', '-kh', path])


def check_root(usage):
    if usage.avail_kb < CRITICAL_AVAIL_KB:
        V.bump('disk-root-critical')
        raise DiskSpaceError(
            f'Docker root filesystem is completely out of space! ({usage.used_pct}% used on {usage.path})',
            ROOT_HINT + '\n' + df_listing(usage.path))
    if usage.used_pct >= FULL_USED_PCT or usage.avail_kb < LOW_AVAIL_KB:
        V.bump('disk-root-low')
        C.log_warning(f'Docker root filesystem is running out of space! ({usage.used_pct}% used on {usage.path})\n'
                      + ROOT_LOW_HINT + '\n' + df_listing(usage.path))
        return False
    return True


def check_data(usage, root_usage, pause_secs=5):
    if usage.avail_kb < CRITICAL_AVAIL_KB:
        V.bump('disk-data-critical')
        C.log_warning(f'Docker data volume is completely out of space! ({usage.used_pct}% used on {usage.path})\n'
                      + DATA_HINT + '\n' + df_listing(usage.path))
        if pause_secs: time.sleep(pause_secs)
        return False
    if usage.used_pct >= FULL_USED_PCT or root_usage.avail_kb < LOW_AVAIL_KB:
        V.bump('disk-data-low')
        C.log_warning(f'Docker data volume is running out of space! ({usage.used_pct}% used on {usage.path})\n'
                      + DATA_LOW_HINT + '\n' + df_listing(usage.path))
        return False
    return True


def check_disk_space(data_dir, root='/', pause_secs=5):
    '''Returns True if both volumes look healthy; raises DiskSpaceError if root is critically low.'''
    root_usage = disk_usage(root)
    C.log_debug(f'root filesystem: {root_usage}')
    root_ok = check_root(root_usage)

    data_usage = disk_usage(data_dir)
    C.log_debug(f'data volume: {data_usage}')
    data_ok = check_data(data_usage, root_usage, pause_secs)
    return root_ok and data_ok
