'''Common Python helpers for the entrypoint.

Highlights:
  - The EntrypointError family; the only errors main() turns into exit codes
  - Leveled logger writing to stderr (what "docker logs" shows) and optionally a file
  - Simplified front-end to subprocess.popen, for diagnostics
  - Resolver for special setting values ($VAR and file:X)

'''

import os, subprocess, sys, time
from dataclasses import dataclass

import dentry.varz as varz


# ----------------------------------------
# errors


class EntrypointError(Exception):
    '''Expected, explainable reasons to refuse to launch.

       Carries the process exit status and a human-readable remediation hint.
       Anything that is not one of these propagates as-is.'''
    exit_code = 3

    def __init__(self, msg, hint=None, exit_code=None):
        super().__init__(msg)
        self.hint = hint
        if exit_code is not None: self.exit_code = exit_code

    def describe(self):
        if not self.hint: return str(self)
        return '%s\n%s' % (self, self.hint)


# ----------------------------------------
# Simple I/O

def stderr(msg):
    sys.stderr.write("%s\n" % msg)


def read_file(filename, strip=False, wrap_exceptions=True):
    '''Returns the file's contents, or None if it can't be read (unless wrap_exceptions is off).'''
    try:
        with open(filename) as f: data = f.read()
    except OSError:
        if wrap_exceptions: return None
        raise
    return data.strip() if strip else data


# ----------------------------------------
# logging


# ---------- log level constants

LEVELS = {'DEBUG': 10, 'INFO': 20, 'WARNING': 30, 'ERROR': 40, 'NEVER': 99}
DEBUG, INFO, WARNING, ERROR, NEVER = (LEVELS[i] for i in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'NEVER'))


# ---------- Internal state

# initial state set so that calls to log() will output to stderr BEFORE init_log() is called.
FILTER_LEVEL_LOGFILE = NEVER
FILTER_LEVEL_STDERR = INFO

LOG_FILENAME = None
LOG_TITLE = 'entrypoint'
FORCE_TIME = None


# ---------- business logic

def getLevelName(level):
    for name, number in LEVELS.items():
        if number == level: return name
    return None

def getLevelNumber(name):
    if isinstance(name, int): return name
    return LEVELS.get(str(name).upper())


def init_log(log_title='entrypoint', logfile=None,
             filter_level_logfile=INFO, filter_level_stderr=INFO,
             force_time=None):   ## force_time is for testing only.
    '''Unlike most services, the entrypoint's primary log destination is stderr;
       that's where "docker logs" will find it.  A logfile is optional, and
       one that can't be opened just means we carry on with stderr alone.'''
    global LOG_FILENAME, LOG_TITLE, FORCE_TIME, FILTER_LEVEL_LOGFILE, FILTER_LEVEL_STDERR
    LOG_TITLE = log_title
    FORCE_TIME = force_time
    FILTER_LEVEL_STDERR = filter_level_stderr
    FILTER_LEVEL_LOGFILE = NEVER
    LOG_FILENAME = None
    for key in [k for k in varz.VARZ if k.startswith('log-')]: varz.VARZ.pop(key)

    if logfile:
        try:
            with open(logfile, 'a'): pass
        except OSError as e:
            stderr('Error opening logfile %s: %s; continuing with stderr only' % (logfile, e))
        else:
            LOG_FILENAME, FILTER_LEVEL_LOGFILE = logfile, filter_level_logfile
    return True


def log(msg, level=INFO):
    if level < min(FILTER_LEVEL_LOGFILE, FILTER_LEVEL_STDERR):
        varz.bump('log-absorbed')
        return False
    if level >= WARNING: varz.bump('log-warning-or-higher')
    if level >= ERROR: varz.bump('log-error-or-higher')
    level_name = getLevelName(level)
    when = FORCE_TIME or timestr()

    if level >= FILTER_LEVEL_STDERR:
        stderr('%s: %s: %s: %s' % (LOG_TITLE, when, level_name, msg))
    if level >= FILTER_LEVEL_LOGFILE:
        with open(LOG_FILENAME, 'a') as f: f.write('%s:%s:%s: %s\n' % (level_name, LOG_TITLE, when, msg))
    return True


def timestr():
    return time.strftime('%Y-%m-%d %H:%M:%S')


# ---------- So callers don't need to pass levels around...

def log_error(msg):    return log(msg, level=ERROR)
def log_warning(msg):  return log(msg, level=WARNING)
def log_info(msg):     return log(msg, level=INFO)
def log_debug(msg):    return log(msg, level=DEBUG)


# ----------------------------------------
# subprocess wrapper, for diagnostics

@dataclass
class PopenOutput:
    ok: bool
    returncode: int
    stdout: str
    stderr: str
    exception_str: str = None

    @property
    def out(self):
        if self.exception_str: return 'ERROR: exception: ' + self.exception_str
        if self.ok: return self.stdout or ''
        return f'ERROR: [{self.returncode}] {self.stderr}'

    def __str__(self): return self.out


def popen(args, stdin_str=None, timeout=None):
    '''Run args, never raising.  Output is stripped; a failure to run at all
       shows up as exception_str with returncode 255.'''
    try:
        proc = subprocess.run(args, input=stdin_str, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        return PopenOutput(False, 255, None, None, str(e))
    return PopenOutput(proc.returncode == 0, proc.returncode,
                       (proc.stdout or '').strip(), (proc.stderr or '').strip())


def popener(args, stdin_str=None, timeout=None):
    '''Just the .out of popen(); what a missing tool looks like in a diagnostic dump.'''
    return popen(args, stdin_str, timeout).out


# ----------------------------------------
# special value resolution

def special_arg_resolver(input_val, argname='argument', env_value_default=None):
    '''Expand a setting value that takes one of these special forms:
       - $X or ${X}suffix: the value of environment variable X (plus suffix)
       - file:X or f:X: the stripped contents of file X
       Anything else (including non-strings) comes back unchanged.

       If X is not in the environment, env_value_default is returned; if
       that is None too there is no source for the value and ValueError is raised.
    '''
    if not input_val or not isinstance(input_val, str): return input_val

    if input_val.startswith('$'):
        if input_val.startswith('${'):
            varname, remainder = input_val[2:].split('}', 1)
        else:
            varname, remainder = input_val[1:], ''
        value = os.environ.get(varname)
        if value is not None: return value + remainder
        if env_value_default is not None: return env_value_default
        raise ValueError(f'{argname} indicated to use environment variable {input_val}, but variable is not set and no default provided.')

    if input_val.startswith(('file:', 'f:')):
        return read_file(input_val.split(':', 1)[1], strip=True, wrap_exceptions=False)

    return input_val
