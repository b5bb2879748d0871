'''Process-wide counters for what the entrypoint did on this start.

The entrypoint only lives for a few moments before exec'ing its target, so
nothing exports these values; they're here so the log and the checks have
a single place to count what happened (warnings raised, files chowned, etc),
and so tests can assert on those counts without scraping stderr.

'''

import collections


# ---------- internal state

VARZ = collections.Counter()


# ---------- access

def get(name=None):
    '''Counter value for name (None if never touched), or the whole table.'''
    if name is None: return VARZ
    return VARZ[name] if name in VARZ else None


def bump(name, add=1):
    VARZ[name] += add


def set(name, value):
    VARZ[name] = value


def reset():
    VARZ.clear()
