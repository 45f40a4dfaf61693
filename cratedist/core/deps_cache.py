"""
:mod:`cratedist.core.deps_cache` --- Dependency-only build
==========================================================

The first build phase compiles the external dependency graph only, and
stores the compiled ``target`` directory as an artifact of its own.

The build runs the toolchain's dependency command on the
:class:`~cratedist.core.sources.DependencySkeleton` of the workspace,
never on the program's own source. The artifact ID is the hash of
:meth:`~cratedist.core.build_inputs.BuildInputSet.dependency_document`
together with the dependency command, so the artifact is reused by
every build whose dependency declarations, lockfile, platform and
tool dependencies are unchanged, regardless of edits to the program.

A failure is reported as :class:`DependencyResolutionError`; the build
store guarantees no partial artifact is published, and the build is
never retried.
"""

import os
from os.path import join as pjoin

from .build_store import BuildSpec
from .common import DependencyResolutionError
from .run_job import run_job, JobFailedError

TARGET_DIRNAME = 'target'


class DependencyCacheArtifact(object):
    """A resolved dependency-only build in the build store"""

    def __init__(self, artifact_id, path):
        self.artifact_id = artifact_id
        self.path = path

    @property
    def target_dir(self):
        return pjoin(self.path, TARGET_DIRNAME)

    def __repr__(self):
        return '<DependencyCacheArtifact %s>' % self.artifact_id


class DependencyCacheBuilder(object):
    """
    Parameters
    ----------

    build_store : :class:`~cratedist.core.build_store.BuildStore`

    toolchain : :class:`~cratedist.core.toolenv.Toolchain`

    logger : Logger
    """

    def __init__(self, build_store, toolchain, logger):
        self.build_store = build_store
        self.toolchain = toolchain
        self.logger = logger

    def build_spec(self, inputs):
        return BuildSpec({
            'name': '%s-deps' % inputs.name,
            'version': inputs.version,
            'inputs': inputs.dependency_document(),
            'command': list(self.toolchain.dependency_command),
            'env': dict(self.toolchain.env),
        })

    def cache_key(self, inputs):
        return self.build_spec(inputs).artifact_id

    def lookup(self, inputs):
        """Returns the artifact if present in the store, else `None`"""
        spec = self.build_spec(inputs)
        path = self.build_store.resolve(spec.artifact_id)
        if path is None:
            return None
        return DependencyCacheArtifact(spec.artifact_id, path)

    def ensure(self, inputs, keep_build='never'):
        """Returns the :class:`DependencyCacheArtifact` for `inputs`, building
        it if it is not present
        """
        spec = self.build_spec(inputs)
        if self.build_store.is_present(spec):
            self.logger.info('Dependency cache %s is up to date' % spec.short_artifact_id)

        def build(build_dir, artifact_dir, logger):
            src_dir = pjoin(build_dir, 'src')
            os.mkdir(src_dir)
            inputs.skeleton.materialize(src_dir)
            env = {'ARTIFACT': artifact_dir,
                   'BUILD': build_dir,
                   'CARGO_TARGET_DIR': pjoin(artifact_dir, TARGET_DIRNAME),
                   'PATH': self.toolchain.search_path()}
            env.update(self.toolchain.env)
            try:
                run_job(logger, [self.toolchain.dependency_command], env, src_dir)
            except JobFailedError as e:
                raise DependencyResolutionError(
                    'building the dependencies of %s failed (code=%s)' % (inputs.name, e.returncode),
                    build_dir, e.output)

        artifact_id, path = self.build_store.ensure_present(spec, build, keep_build=keep_build)
        return DependencyCacheArtifact(artifact_id, path)
