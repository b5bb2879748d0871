'''Turn the container's CMD into the final command, drop privileges, and exec it.

Two shapes:

  verbatim:   "docker run img /bin/bash", "docker run img archivebox init",
              "docker run img cat /VERSION.txt"
              The first arg is an absolute path or a well-known name, so the
              args are a complete command line.  They're re-quoted and run as
              /bin/bash -c "exec ...": the shell sets up the environment and
              PATH, and the inner exec hands the pid over to the command.

  subcommand: "docker run img add https://example.com", "docker run img server 0.0.0.0:8000"
              Anything else is arguments for the main application binary.
'''

import os, shlex, shutil
from dataclasses import dataclass

import dentry.common as C


SHELL = '/bin/bash'
VERBATIM_NAMES = ['bash', 'sh', 'echo', 'cat', 'whoami']


@dataclass
class LaunchPlan:
    argv: list
    shape: str      # 'verbatim' or 'subcommand'


def find_app_binary(app_name):
    return shutil.which(app_name) or app_name


def is_verbatim(first_arg, app_name):
    if not first_arg: return False
    return first_arg.startswith('/') or first_arg in VERBATIM_NAMES or first_arg == app_name


def plan_launch(args, app_name='archivebox', app_bin=None):
    args = list(args)
    if args and is_verbatim(args[0], app_name):
        return LaunchPlan([SHELL, '-c', 'exec ' + shlex.join(args)], 'verbatim')
    return LaunchPlan([app_bin or find_app_binary(app_name)] + args, 'subcommand')


def drop_privileges(ids, user_name, home):
    '''Switch to ids (if we're root) and publish the identity for the launched command.'''
    os.environ['PUID'] = str(ids.uid)
    os.environ['PGID'] = str(ids.gid)
    if os.getuid() != 0:
        C.log_debug(f'not running as root; staying uid {os.getuid()} rather than switching to {ids}')
        return False
    os.setgroups([ids.gid])
    os.setgid(ids.gid)
    os.setuid(ids.uid)
    os.environ['HOME'] = home
    os.environ['USER'] = user_name
    os.environ['LOGNAME'] = user_name
    return True


def exec_plan(plan):
    C.log_debug(f'exec ({plan.shape}): {plan.argv}')
    os.execvp(plan.argv[0], plan.argv)    # does not return.
