'''Detect running under QEMU user-mode emulation (e.g. an amd64 image on an arm64 host).

Under emulation the container's pid 1 has the qemu binary mapped into its
address space, so a look at its memory maps is enough.  Lots of things
silently break under QEMU, but nothing here is fatal: we only warn.
'''

import os, platform
import psutil

import dentry.common as C
import dentry.varz as V


EMULATION_MARKER = 'qemu'

WARNING_MSG = '''Running %s docker image using QEMU emulation, some things will break!
    chromium (screenshot, pdf, dom), singlefile, and any dependencies that rely on inotify will not run in QEMU.
    See here for more info: https://github.com/microsoft/playwright/issues/17395#issuecomment-1250830493'''


def mapped_paths(pid=1):
    return [m.path for m in psutil.Process(pid).memory_maps(grouped=True)]


def in_emulation(pid=1):
    try:
        paths = mapped_paths(pid)
    except (psutil.Error, OSError) as e:
        C.log_debug(f'unable to read memory maps of pid {pid}; assuming no emulation: {e}')
        return False
    return any(EMULATION_MARKER in p.lower() for p in paths)


def warn_if_emulated(pid=1):
    '''Warns on stderr if emulated, and publishes $IN_QEMU for the launched command.  Returns the detection result.'''
    emulated = in_emulation(pid)
    os.environ['IN_QEMU'] = 'True' if emulated else 'False'
    if emulated:
        V.bump('emulation-detected')
        C.log_warning(WARNING_MSG % platform.machine())
    return emulated
