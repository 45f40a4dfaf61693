"""
:mod:`cratedist.core.outputs` --- Pipeline and its outputs
==========================================================

:class:`Pipeline` wires the build together and exposes the result
under four output shapes:

**packages**
    ``default`` and each configured alias (e.g. ``typst-dev``) resolve
    to the *same* :class:`~cratedist.core.package_builder.PackageArtifact`
    object; the tool environments (e.g. ``intellij-env``) are packages
    too.

**apps.default**
    An :class:`App` running the package's main program.

**devShells.default**
    A :class:`DevShell` with the toolchain and the platform's native
    dependencies; it never builds the program.

**overlay**
    All packages except ``default``, for re-export to another build.

Every accessor is memoized, so within one pipeline each artifact is
resolved (and, on a cache miss, built) at most once, no matter how
many outputs refer to it. Package sets are lazy mappings: listing
their names builds nothing, looking an entry up builds only that
entry.

Build order: the dependency cache is always resolved before the
package build starts, since the package builds on top of it.
"""

import os
import subprocess
from collections.abc import Mapping
from os.path import join as pjoin

from .build_inputs import assemble_build_inputs
from .build_store import BuildStore
from .cache import memoized
from .deps_cache import DependencyCacheBuilder
from .manifest import read_manifest, MANIFEST_FILENAME
from .package_builder import PackageBuilder, InstallLayout
from .platform import current_platform, resolve_platform_dependencies, check_native_dependencies
from .sources import SourceSelection
from .toolenv import Toolchain, build_tool_env, RUST_SRC_RELPATH
from .version import resolve_build_identifier

DEFAULT = 'default'


class OutputSet(Mapping):
    """Read-only mapping of output name to a (memoized) accessor; values are
    computed when looked up
    """

    def __init__(self, accessors):
        self._accessors = dict(accessors)

    def __getitem__(self, name):
        return self._accessors[name]()

    def __contains__(self, name):
        return name in self._accessors

    def __iter__(self):
        return iter(sorted(self._accessors))

    def __len__(self):
        return len(self._accessors)

    def __repr__(self):
        return '<OutputSet %s>' % ', '.join(self)

    def without(self, *names):
        return OutputSet((key, value) for key, value in self._accessors.items()
                         if key not in names)


class ToolEnv(object):
    def __init__(self, name, artifact_id, path, components):
        self.name = name
        self.artifact_id = artifact_id
        self.path = path
        self.components = components

    @property
    def bin_dir(self):
        return pjoin(self.path, 'bin')

    def __repr__(self):
        return '<ToolEnv %s>' % self.artifact_id


class App(object):
    """A runnable wrapper around the package's main executable"""

    type = 'app'

    def __init__(self, program):
        self.program = program

    def as_document(self):
        return {'type': self.type, 'program': self.program}

    def run(self, args=(), env=None):
        """Runs the program with `args`, inheriting stdio; returns its exit
        code unchanged
        """
        return subprocess.call([self.program] + list(args), env=env)


class DevShell(object):
    """
    An environment for interactive development: the toolchain and extra
    packages (linked in `tool_env`) plus the native dependencies of the
    platform. The program itself is not part of it.
    """

    def __init__(self, name, tool_env, packages, build_inputs):
        self.name = name
        self.tool_env = tool_env
        self.packages = tuple(packages)
        self.build_inputs = tuple(build_inputs)

    def as_document(self):
        return {'packages': list(self.packages),
                'buildInputs': list(self.build_inputs),
                'env': self.tool_env.path}

    def environment(self, base_env=None):
        if base_env is None:
            base_env = os.environ
        env = dict(base_env)
        path = env.get('PATH')
        env['PATH'] = self.tool_env.bin_dir + (os.pathsep + path if path else '')
        rust_src = pjoin(self.tool_env.path, RUST_SRC_RELPATH)
        if os.path.exists(rust_src):
            env['RUST_SRC_PATH'] = rust_src
        env['CRATEDIST_DEVSHELL'] = self.name
        env['CRATEDIST_NATIVE_DEPENDENCIES'] = ' '.join(self.build_inputs)
        return env

    def spawn(self, shell=None, base_env=None):
        """Runs an interactive shell in the environment and returns its exit code"""
        env = self.environment(base_env)
        if shell is None:
            shell = env.get('SHELL', '/bin/sh')
        return subprocess.call([shell], env=env)


class Pipeline(object):
    """
    Parameters
    ----------

    config : dict
        Pipeline configuration, see :mod:`cratedist.formats.config`.

    src_dir : str
        Workspace root.

    revision_info : :class:`~cratedist.core.version.RevisionInfo`
        Supplied by the caller.

    logger : Logger

    platform : str (optional)
        Target platform tag; defaults to the host platform.

    keep_build : str
        Passed on to the build store.
    """

    def __init__(self, config, src_dir, revision_info, logger, platform=None,
                 keep_build='never', build_store=None, toolchain=None):
        self.config = config
        self.src_dir = os.path.realpath(src_dir)
        self.revision_info = revision_info
        self.logger = logger
        self.platform = platform if platform is not None else current_platform()
        self.keep_build = keep_build
        if build_store is None:
            build_store = BuildStore.create_from_config(config, logger, create_dirs=True)
        self.build_store = build_store
        if toolchain is None:
            toolchain = Toolchain.create_from_config(config)
        self.toolchain = toolchain
        self.layout = InstallLayout.create_from_config(config)

    @memoized
    def manifest(self):
        return read_manifest(pjoin(self.src_dir, MANIFEST_FILENAME),
                             name=self.config['program']['name'])

    @memoized
    def build_identifier(self):
        return resolve_build_identifier(self.manifest().version, self.revision_info)

    @memoized
    def source_selection(self):
        return SourceSelection(self.config['sources']['patterns'])

    @memoized
    def native_dependencies(self):
        deps = resolve_platform_dependencies(self.config['platform_dependencies'], self.platform)
        check_native_dependencies(deps, self.logger)
        return deps

    @memoized
    def inputs(self):
        self.native_dependencies()
        return assemble_build_inputs(self.config, self.src_dir, self.manifest(),
                                     self.build_identifier(), self.platform,
                                     self.source_selection())

    @memoized
    def dependency_cache(self):
        builder = DependencyCacheBuilder(self.build_store, self.toolchain, self.logger)
        return builder.ensure(self.inputs(), keep_build=self.keep_build)

    @memoized
    def package(self):
        deps = self.dependency_cache()
        builder = PackageBuilder(self.build_store, self.toolchain, self.layout, self.logger)
        return builder.ensure(self.inputs(), deps, keep_build=self.keep_build)

    def _tool_env(self, name, components):
        paths = self.toolchain.locate_all(components, self.logger)
        artifact_id, path = build_tool_env(self.build_store, name, paths,
                                           keep_build=self.keep_build)
        return ToolEnv(name, artifact_id, path, sorted(paths))

    def _tool_env_accessor(self, name):
        components = self.config['tool_envs'][name]

        def accessor():
            memo = self.__dict__.setdefault('_tool_envs', {})
            if name not in memo:
                memo[name] = self._tool_env(name, components)
            return memo[name]
        return accessor

    @memoized
    def packages(self):
        accessors = {DEFAULT: self.package}
        for alias in self.config['program']['aliases']:
            accessors[alias] = self.package
        for name in self.config['tool_envs']:
            accessors[name] = self._tool_env_accessor(name)
        return OutputSet(accessors)

    @memoized
    def app(self):
        return App(self.package().main_program)

    def apps(self):
        return OutputSet({DEFAULT: self.app})

    @memoized
    def dev_shell(self):
        packages = list(self.toolchain.components) + list(self.config['dev_shell']['packages'])
        env = self._tool_env('%s-devshell' % self.config['program']['name'], packages)
        return DevShell(DEFAULT, env, packages, self.native_dependencies())

    def dev_shells(self):
        return OutputSet({DEFAULT: self.dev_shell})

    @memoized
    def overlay(self):
        return self.packages().without(DEFAULT)

    def describe(self):
        """The output surface as a JSON-like document (builds everything)"""
        def package_doc(obj):
            return {'id': obj.artifact_id, 'path': obj.path}
        return {
            'packages': dict((name, package_doc(pkg)) for name, pkg in self.packages().items()),
            'apps': {DEFAULT: self.app().as_document()},
            'devShells': {DEFAULT: self.dev_shell().as_document()},
            'overlayAttrs': sorted(self.overlay()),
        }
