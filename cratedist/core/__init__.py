from .common import (BuildPipelineError, ManifestParseError, DependencyResolutionError,
                     PackageBuildError, PostInstallError, IllegalBuildStoreError,
                     BuildFailedError)
from .manifest import WorkspaceManifest, read_manifest
from .version import RevisionInfo, resolve_build_identifier, revision_from_git, DIRTY_MARKER
from .sources import SourceSelection, DependencySkeleton, SOURCE_PATTERNS
from .build_inputs import BuildInputSet, assemble_build_inputs
from .build_store import ArtifactBuilder, BuildStore, BuildSpec, shorten_artifact_id
from .run_job import InvalidJobSpecError, JobFailedError, run_job
from .deps_cache import DependencyCacheBuilder, DependencyCacheArtifact
from .package_builder import PackageBuilder, PackageArtifact, InstallLayout
from .toolenv import Toolchain, build_tool_env
from .outputs import Pipeline, App, DevShell
from .hasher import hash_document
