
class BuildPipelineError(Exception):
    """Base class for errors that abort the build pipeline"""


class ManifestParseError(BuildPipelineError):
    pass


class DependencyResolutionError(BuildPipelineError):
    """The dependency-only build failed; no cache entry was published"""
    def __init__(self, msg, build_dir=None, output=None):
        BuildPipelineError.__init__(self, msg)
        self.build_dir = build_dir
        self.output = output


class PackageBuildError(BuildPipelineError):
    """Compilation of the program's own source failed

    `output` is the toolchain output, unmodified.
    """
    def __init__(self, msg, build_dir=None, output=None):
        BuildPipelineError.__init__(self, msg)
        self.build_dir = build_dir
        self.output = output


class PostInstallError(BuildPipelineError):
    """A declared artifact was missing after a successful compile"""
    def __init__(self, msg, missing=None):
        BuildPipelineError.__init__(self, msg)
        self.missing = missing


class IllegalBuildStoreError(BuildPipelineError):
    pass


class BuildFailedError(BuildPipelineError):
    def __init__(self, msg, build_dir, wrapped=None):
        BuildPipelineError.__init__(self, msg)
        self.build_dir = build_dir
        self.wrapped = wrapped


json_formatting_options = dict(indent=2, separators=(', ', ' : '),
                               sort_keys=True, allow_nan=False)

SHORT_ARTIFACT_ID_LEN = 12
