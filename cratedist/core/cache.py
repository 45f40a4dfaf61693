"""
:mod:`cratedist.core.cache` --- Per-object memoization
======================================================

The build store caches across invocations; within one invocation the
pipeline additionally memoizes each computed value on the object, so
that asking for the same output twice never even looks at the store
again.
"""

from functools import wraps

_MISSING = object()


def memoized(func):
    """Decorates a method taking no arguments besides `self`; the first
    result is stored on the instance and returned by every later call.
    Exceptions are not stored.
    """
    @wraps(func)
    def replacement(self):
        memo = self.__dict__.setdefault('_memo', {})
        x = memo.get(func.__name__, _MISSING)
        if x is _MISSING:
            x = memo[func.__name__] = func(self)
        return x
    return replacement


def is_memoized(obj, name):
    """Whether the memoized method `name` of `obj` has been computed"""
    return name in obj.__dict__.get('_memo', {})
