"""
:mod:`cratedist.core.toolenv` --- Toolchain and tool environments
=================================================================

The toolchain (``rustc``, ``cargo``, the standard library sources) is
provided by the host; cratedist only locates it. A *tool environment*
is a build store artifact with a ``bin/`` directory of symlinks to the
located executables, e.g. the ``intellij-env`` package that gives an
IDE a single directory to point at, or the environment of the
development shell.

``rust-src`` is not an executable; it resolves to the standard library
sources below the sysroot reported by ``rustc --print sysroot`` and is
linked as ``lib/rustlib/src``.
"""

import os
import shutil
import subprocess
from os.path import join as pjoin

from .build_store import BuildSpec
from .fileutils import atomic_symlink, silent_makedirs

RUST_SRC = 'rust-src'
RUST_SRC_RELPATH = pjoin('lib', 'rustlib', 'src')


class Toolchain(object):
    """
    The external toolchain and how to invoke it.

    Parameters
    ----------

    components : list of str
        Toolchain components (executables, or ``rust-src``).

    dependency_command, build_command : list of str
        Argument lists run for the dependency-only and the full build.

    env : dict
        Extra environment for both build phases.

    path : str (optional)
        Search path for components; defaults to ``$PATH``.
    """

    def __init__(self, components, dependency_command, build_command, env=None, path=None):
        self.components = tuple(components)
        self.dependency_command = tuple(dependency_command)
        self.build_command = tuple(build_command)
        self.env = dict(env or {})
        self.path = path

    @staticmethod
    def create_from_config(config, path=None):
        toolchain = config['toolchain']
        if path is None:
            path = toolchain.get('path')
        return Toolchain(toolchain['components'], toolchain['dependency_command'],
                         toolchain['build_command'], toolchain['env'], path)

    def search_path(self, host_env=None):
        """``$PATH`` for running the toolchain: `path` first, then the host's"""
        if host_env is None:
            host_env = os.environ
        host = host_env.get('PATH', '')
        if not self.path:
            return host
        return self.path + (os.pathsep + host if host else '')

    def locate(self, component):
        """Returns the absolute path of a component, or `None` if not found"""
        if component == RUST_SRC:
            return self._locate_rust_src()
        path = shutil.which(component, path=self.path)
        return None if path is None else os.path.abspath(path)

    def _locate_rust_src(self):
        rustc = self.locate('rustc')
        if rustc is None:
            return None
        try:
            out = subprocess.check_output([rustc, '--print', 'sysroot'],
                                          stdin=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except (OSError, subprocess.CalledProcessError):
            return None
        src = pjoin(out.decode('UTF-8').strip(), RUST_SRC_RELPATH)
        return src if os.path.isdir(src) else None

    def locate_all(self, components, logger):
        """Returns ``{component: path}``; missing components are logged and skipped"""
        found = {}
        for component in components:
            path = self.locate(component)
            if path is None:
                logger.warning('toolchain component %s not found' % component)
            else:
                found[component] = path
        return found


def tool_env_build_spec(name, paths):
    return BuildSpec({
        'name': name,
        'nohash_description': 'tool environment',
        'paths': dict(paths),
    })


def build_tool_env(build_store, name, paths, keep_build='never'):
    """Creates (if needed) the tool environment `name` linking `paths`
    (``{component: path}``) and returns ``(artifact_id, artifact_dir)``
    """
    spec = tool_env_build_spec(name, paths)

    def build(build_dir, artifact_dir, logger):
        bin_dir = pjoin(artifact_dir, 'bin')
        silent_makedirs(bin_dir)
        for component, path in sorted(paths.items()):
            if component == RUST_SRC:
                target = pjoin(artifact_dir, RUST_SRC_RELPATH)
                silent_makedirs(os.path.dirname(target))
            else:
                target = pjoin(bin_dir, component)
            logger.debug('linking %s -> %s' % (target, path))
            atomic_symlink(path, target)

    return build_store.ensure_present(spec, build, keep_build=keep_build)
