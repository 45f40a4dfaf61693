"""
:mod:`cratedist.core.build_inputs` --- The build input set
==========================================================

A :class:`BuildInputSet` is the complete configuration shared by both
build phases: the selected source, name and version, the native
dependencies of the target platform, the build-time tool dependencies,
and the environment constants given to the package build. It is
assembled once per invocation and never changes afterwards.

Two documents are derived from it and hashed into artifact IDs:

 - :meth:`BuildInputSet.dependency_document` leaves out the program's
   own source (only the dependency skeleton digest is included) and the
   build identifier, so it only changes when dependency declarations,
   the lockfile or platform/tool dependencies change;

 - :meth:`BuildInputSet.package_document` adds the digest of the whole
   selection, the build identifier and the environment constants.
"""

from types import MappingProxyType

from .platform import resolve_platform_dependencies

GEN_ARTIFACTS_VAR = 'GEN_ARTIFACTS'


class BuildInputSet(object):
    """
    Parameters
    ----------

    src_dir : str
        Workspace root.

    source : :class:`~cratedist.core.sources.SourceSelection`

    name, version : str
        From the workspace manifest.

    platform : str
        Target platform tag.

    platform_dependencies : dict
        Maps platform tag to native dependency names; resolved here for
        `platform`.

    tool_dependencies : list of str
        Build-time tools.

    build_identifier : str
        See :mod:`cratedist.core.version`.

    env : dict
        Environment constants for the package build (e.g.
        ``GEN_ARTIFACTS`` and the version variable).
    """

    _frozen = False

    def __init__(self, src_dir, source, name, version, platform, platform_dependencies,
                 tool_dependencies, build_identifier, env):
        self.src_dir = src_dir
        self.source = source
        self.name = name
        self.version = version
        self.platform = platform
        self.platform_dependencies = MappingProxyType(
            dict((key, tuple(value)) for key, value in platform_dependencies.items()))
        self.native_dependencies = resolve_platform_dependencies(platform_dependencies, platform)
        self.tool_dependencies = tuple(tool_dependencies)
        self.build_identifier = build_identifier
        self.env = MappingProxyType(dict(env))

        self.files = tuple(source.select(src_dir))
        self.skeleton = source.dependency_skeleton(src_dir, self.files)
        self.source_digest = source.digest(src_dir, self.files)
        self.dependency_source_digest = self.skeleton.digest()
        self._frozen = True

    def __setattr__(self, key, value):
        if self._frozen:
            raise AttributeError('BuildInputSet is read-only')
        object.__setattr__(self, key, value)

    def __repr__(self):
        return '<BuildInputSet %s %s on %s>' % (self.name, self.version, self.platform)

    def dependency_document(self):
        return {
            'name': self.name,
            'version': self.version,
            'platform': self.platform,
            'native_dependencies': list(self.native_dependencies),
            'tool_dependencies': list(self.tool_dependencies),
            'dependency_source': self.dependency_source_digest,
        }

    def package_document(self):
        doc = self.dependency_document()
        doc['source'] = self.source_digest
        doc['build_identifier'] = self.build_identifier
        doc['env'] = dict(self.env)
        return doc


def assemble_build_inputs(config, src_dir, manifest, build_identifier, platform, source):
    """Creates the :class:`BuildInputSet` described by the pipeline `config`"""
    env = dict(config['toolchain']['env'])
    env[GEN_ARTIFACTS_VAR] = config['artifacts_dir']
    env[config['version_env_var']] = build_identifier
    return BuildInputSet(src_dir=src_dir,
                         source=source,
                         name=manifest.name,
                         version=manifest.version,
                         platform=platform,
                         platform_dependencies=config['platform_dependencies'],
                         tool_dependencies=config['tool_dependencies'],
                         build_identifier=build_identifier,
                         env=env)
