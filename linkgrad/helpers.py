import os
import functools


def dedup(x):
    """Remove duplicates from a list while retaining the order."""
    return list(dict.fromkeys(x))

def argfix(*x):
    """Ensure the argument is a tuple, even if it's a single element or a list."""
    return tuple(x[0]) if x and x[0].__class__ in (tuple, list) else x

def all_same(items) -> bool:
    """Check if every element of a sequence equals the first one."""
    return all(x == items[0] for x in items)

@functools.lru_cache(maxsize=None)
def getenv(key, default=0):
    """Get an environment variable and convert it to the type of 'default'."""
    return type(default)(os.getenv(key, default))

# Global flag for debugging output, e.g. DEBUG=2 python -m pytest
DEBUG = getenv("DEBUG")
