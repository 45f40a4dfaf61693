"""
:mod:`cratedist.core.platform` --- Platform-conditional native dependencies
===========================================================================

Some platforms need extra system libraries/frameworks to build the
program. These are described by a mapping from platform tag to a list
of dependency names; the list for the target platform is resolved once
when the build inputs are assembled, and shared by the package build
and the development shell. Platforms missing from the mapping get no
extra dependencies.
"""

import ctypes.util
import sys

LINUX = 'linux'
DARWIN = 'darwin'
WINDOWS = 'windows'

PLATFORM_TAGS = (LINUX, DARWIN, WINDOWS)

DEFAULT_PLATFORM_DEPENDENCIES = {
    DARWIN: ['darwin.apple_sdk.frameworks.CoreServices', 'libiconv'],
}


def current_platform(sys_platform=None):
    """Maps ``sys.platform`` to one of :data:`PLATFORM_TAGS`"""
    if sys_platform is None:
        sys_platform = sys.platform
    if sys_platform.startswith('linux'):
        return LINUX
    elif sys_platform == 'darwin':
        return DARWIN
    elif sys_platform in ('win32', 'cygwin'):
        return WINDOWS
    else:
        return sys_platform


def resolve_platform_dependencies(mapping, platform):
    """Returns the native dependencies of `platform` as a tuple (empty if
    `platform` is not in `mapping`)
    """
    return tuple(mapping.get(platform, ()))


def _library_name(dep):
    # 'darwin.apple_sdk.frameworks.CoreServices' -> 'CoreServices'
    name = dep.rsplit('.', 1)[-1]
    if name.startswith('lib'):
        name = name[len('lib'):]
    return name


def check_native_dependencies(deps, logger):
    """Logs which of `deps` the host's dynamic loader can find

    Native dependencies are provided by the host system; this is only a
    diagnostic and never fails. Returns ``{dep: found}``.
    """
    found = {}
    for dep in deps:
        path = ctypes.util.find_library(_library_name(dep))
        found[dep] = path is not None
        if path is None:
            logger.debug('native dependency %s not found on host' % dep)
        else:
            logger.debug('native dependency %s: %s' % (dep, path))
    return found
