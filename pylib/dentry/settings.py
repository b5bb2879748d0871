'''Merge settings from the environment and optional settings files.

The entrypoint's controls mostly arrive as environment variables (that's
what "docker run -e" and compose files give us), but images often want to
bake in a few site-specific values, so settings files are supported too.

Sources, in precedence order:

  - the Setting's override environment variable (if it names one and it's set)
  - the settings file(s) loaded so far (later files override earlier ones)
  - the Setting's default

Settings files can be yaml or env ("name=value" lines) format, picked by
filename extension.  Values can use the special forms understood by
dentry.common.special_arg_resolver ($VAR, ${VAR}suffix, file:X).

  s = settings.Settings('/etc/dentry.yaml', [Setting('data_dir', override_env_name='DATA_DIR', default='/data')])
  print(s.get('data_dir'))

There are no flags: every command-line argument belongs to the command the
entrypoint is about to launch.

'''

import os, sys, yaml
from dataclasses import dataclass

import dentry.common as C


@dataclass
class Setting:
    name: str                       # internal name by which we refer to this setting

    doc: str = 'undocumented'

    override_env_name: str = None   # environment variable that beats every other source
    setting_name: str = None        # key in settings files; defaults to {name}
    default: str = None

    default_env_value: str = None   # if value contains $X but $X not defined, return this.  If None, raise a ValueError.

    # resolved value cache
    cached_value: str = None
    how: str = None                 # which source the cached value came from

# ----------

class Settings:

    def __init__(self, settings_filename=None, add_Settings=[], debug=False):
        self.debug = debug
        self._settings_dict = {}               # settings name -> Setting
        self._file_values = {}                 # setting_name -> (value, source filename)

        for setting in add_Settings: self._settings_dict[setting.name] = setting
        if settings_filename: self.parse_settings_file(settings_filename)


    # ----- return setting's values

    def get(self, name):
        '''Resolved value of a registered setting; KeyError for anything else.'''
        setting = self._settings_dict[name]
        if setting.how is None:
            setting.cached_value, setting.how = self._resolve(setting)
            if self.debug: self._debug(f'resolved setting "{name}" \t to \t "{setting.cached_value}" \t via {setting.how}')
        return setting.cached_value

    def get_int(self, name, default=None):
        '''Blank values give default; anything else must be a number.'''
        val = self.get(name)
        if isinstance(val, int): return val
        if val is None or str(val).strip() == '': return default
        try:
            return int(str(val).strip())
        except ValueError:
            raise ValueError(f'setting "{name}" must be a number, got "{val}"')


    # ----- read in settings files
    #
    # returns a dict of settings from the loaded file(s); the effect on what
    # get() sees is cumulative.

    def parse_settings_file(self, filename):
        if isinstance(filename, list):
            cumulative = {}
            for f in filename: cumulative.update(self.parse_settings_file(f))
            return cumulative

        data_type = os.path.splitext(filename)[1][1:]
        if self.debug: self._debug(f'reading settings file {filename} of type {data_type}')
        data = C.read_file(filename)
        if data is None: raise ValueError(f'unable to read settings file {filename}')
        return self.parse_settings_data(data, data_type, filename)


    def parse_settings_data(self, data, data_type, source=None):
        new_settings = {}
        if data_type in ('yaml', 'yml'):
            new_settings = yaml.safe_load(data) or {}
            if not isinstance(new_settings, dict): raise ValueError(f'settings file {source} is not a yaml mapping')

        elif data_type == 'env':
            for line in data.split('\n'):
                line = line.strip()
                if not line or line.startswith('#') or '=' not in line: continue
                key, value = line.split('=', 1)
                new_settings[key.strip()] = value.strip(" \t'\"")

        else:
            raise ValueError(f'unknown settings data type "{data_type}" for {source}')

        if self.debug: self._debug(f'loaded {len(new_settings)} settings from {data_type} source {source}: {new_settings}')
        for key, value in new_settings.items(): self._file_values[key] = (value, source)
        self.reset_cached_values()  # a new file can change already-resolved answers
        return new_settings


    def reset_cached_values(self):
        for setting in self._settings_dict.values():
            setting.cached_value, setting.how = None, None


    # ----- resolve an individual setting's value

    def _resolve(self, setting):
        answer, how = self._search_sources_for_setting(setting)
        resolved = C.special_arg_resolver(answer, setting.name, setting.default_env_value)
        if resolved != answer: how += f'; after arg resolved for: {answer}'
        return resolved, how

    def _search_sources_for_setting(self, setting):
        if setting.override_env_name:
            val = os.environ.get(setting.override_env_name)
            if val: return val, f'override environment variable ${setting.override_env_name}'

        setting_name = setting.setting_name or setting.name
        val, source = self._file_values.get(setting_name, (None, None))
        if val is not None and val != '': return val, f'setting {setting_name} from file {source}'

        if setting.default is not None: return setting.default, 'default'
        return None, 'no value or default value provided'

    def _debug(self, msg): print(f'DEBUG: {msg}', file=sys.stderr)
