"""
:mod:`cratedist.core.package_builder` --- Full program build
============================================================

The second build phase compiles the program itself on top of a
finished :class:`~cratedist.core.deps_cache.DependencyCacheArtifact`:
the cached ``target`` directory is copied into the build directory so
that the toolchain only has to compile the program's own crates, the
selected source is copied next to it, and the build command is run
with the package environment constants (``GEN_ARTIFACTS``, the version
variable, ...).

Post-install
------------

After a successful compile the main program is copied to
``$ARTIFACT/bin``, then the files the build script generated in
``crates/<cli-crate>/<artifacts-dir>/`` are installed:

=========================  ==========================================
generated file             installed as
=========================  ==========================================
``*.1`` (any man section)  ``share/man/man<section>/``
``<tool>.bash``            ``share/bash-completion/completions/<tool>.bash``
``<tool>.fish``            ``share/fish/vendor_completions.d/<tool>.fish``
``_<tool>`` (zsh)          ``share/zsh/site-functions/_<tool>``
=========================  ==========================================

A missing file is a :class:`PostInstallError`: the compile succeeded,
so the build script and the declared artifacts disagree.
"""

import glob
import os
from os.path import join as pjoin

from .build_store import BuildSpec
from .common import PackageBuildError, PostInstallError, BuildFailedError
from .deps_cache import TARGET_DIRNAME
from .fileutils import copy_tree_into, install_file, is_executable
from .run_job import run_job, JobFailedError

BASH, FISH, ZSH = 'bash', 'fish', 'zsh'

COMPLETION_DIRS = {
    BASH: pjoin('share', 'bash-completion', 'completions'),
    FISH: pjoin('share', 'fish', 'vendor_completions.d'),
    ZSH: pjoin('share', 'zsh', 'site-functions'),
}

MAN_PAGE_GLOB = '*.1'


class InstallLayout(object):
    """Where the generated artifacts are found and what gets installed

    Parameters
    ----------

    cli_crate : str
        Directory name of the command-line crate below ``crates/``.

    main_program : str
        Name of the executable (also the completion file stem).

    artifacts_dir : str
        Directory the build script writes generated files to, relative
        to the cli crate (the value of ``GEN_ARTIFACTS``).
    """

    def __init__(self, cli_crate, main_program, artifacts_dir):
        self.cli_crate = cli_crate
        self.main_program = main_program
        self.artifacts_dir = artifacts_dir

    @staticmethod
    def create_from_config(config):
        program = config['program']
        return InstallLayout(program['cli_crate'], program['main_program'],
                             config['artifacts_dir'])

    def as_document(self):
        return {'cli_crate': self.cli_crate, 'main_program': self.main_program,
                'artifacts_dir': self.artifacts_dir}

    def generated_dir(self, src_dir):
        return pjoin(src_dir, 'crates', self.cli_crate, self.artifacts_dir)

    def completion_sources(self, src_dir):
        """``{shell: generated file}``; bash and fish under their native
        names, zsh given explicitly
        """
        d = self.generated_dir(src_dir)
        tool = self.main_program
        return {BASH: pjoin(d, '%s.bash' % tool),
                FISH: pjoin(d, '%s.fish' % tool),
                ZSH: pjoin(d, '_%s' % tool)}

    def completion_targets(self, prefix):
        tool = self.main_program
        return {BASH: pjoin(prefix, COMPLETION_DIRS[BASH], '%s.bash' % tool),
                FISH: pjoin(prefix, COMPLETION_DIRS[FISH], '%s.fish' % tool),
                ZSH: pjoin(prefix, COMPLETION_DIRS[ZSH], '_%s' % tool)}

    def program_path(self, prefix):
        return pjoin(prefix, 'bin', self.main_program)


class PackageArtifact(object):
    """The built program in the build store"""

    def __init__(self, artifact_id, path, layout, dependency_cache):
        self.artifact_id = artifact_id
        self.path = path
        self.layout = layout
        self.dependency_cache = dependency_cache

    @property
    def main_program(self):
        return self.layout.program_path(self.path)

    @property
    def man_pages(self):
        return sorted(glob.glob(pjoin(self.path, 'share', 'man', 'man*', '*')))

    @property
    def completions(self):
        return self.layout.completion_targets(self.path)

    def __repr__(self):
        return '<PackageArtifact %s>' % self.artifact_id


def cargo_profile_dir(command):
    """Name of the directory below ``target`` the command writes binaries to"""
    command = list(command)
    for i, arg in enumerate(command):
        if arg.startswith('--profile='):
            return arg[len('--profile='):]
        if arg == '--profile' and i + 1 < len(command):
            return command[i + 1]
    return 'release' if ('--release' in command or '-r' in command) else 'debug'


def install_man_pages(generated_dir, prefix, logger):
    pages = sorted(glob.glob(pjoin(generated_dir, MAN_PAGE_GLOB)))
    if not pages:
        raise PostInstallError('no man page matching %s in %s' % (MAN_PAGE_GLOB, generated_dir),
                               missing=[pjoin(generated_dir, MAN_PAGE_GLOB)])
    installed = []
    for page in pages:
        section = page.rsplit('.', 1)[-1]
        installed.append(install_file(page, pjoin(prefix, 'share', 'man', 'man%s' % section)))
        logger.info('installed man page %s' % os.path.basename(page))
    return installed


def install_shell_completions(layout, src_dir, prefix, logger):
    sources = layout.completion_sources(src_dir)
    missing = [path for shell, path in sorted(sources.items()) if not os.path.isfile(path)]
    if missing:
        raise PostInstallError('missing shell completion(s): %s' % ', '.join(missing),
                               missing=missing)
    targets = layout.completion_targets(prefix)
    for shell in (BASH, FISH, ZSH):
        target = targets[shell]
        install_file(sources[shell], os.path.dirname(target), os.path.basename(target))
        logger.info('installed %s completion %s' % (shell, os.path.basename(target)))
    return targets


def install_program(layout, target_dir, profile, prefix):
    binary = pjoin(target_dir, profile, layout.main_program)
    if not is_executable(binary):
        raise PostInstallError('main program %s was not produced by the build' % binary,
                               missing=[binary])
    return install_file(binary, pjoin(prefix, 'bin'), mode=0o755)


class PackageBuilder(object):
    """
    Parameters
    ----------

    build_store : :class:`~cratedist.core.build_store.BuildStore`

    toolchain : :class:`~cratedist.core.toolenv.Toolchain`

    layout : :class:`InstallLayout`

    logger : Logger
    """

    def __init__(self, build_store, toolchain, layout, logger):
        self.build_store = build_store
        self.toolchain = toolchain
        self.layout = layout
        self.logger = logger

    def build_spec(self, inputs, deps):
        return BuildSpec({
            'name': inputs.name,
            'version': inputs.version,
            'inputs': inputs.package_document(),
            'dependencies': [deps.artifact_id],
            'command': list(self.toolchain.build_command),
            'install': self.layout.as_document(),
        })

    def ensure(self, inputs, deps, keep_build='never'):
        """Returns the :class:`PackageArtifact` for `inputs`, building it on top of
        the dependency cache `deps` if it is not present
        """
        if self.build_store.resolve(deps.artifact_id) is None:
            raise BuildFailedError('dependency cache %s is not present in the build store'
                                   % deps.artifact_id, None)
        spec = self.build_spec(inputs, deps)
        if self.build_store.is_present(spec):
            self.logger.info('Package %s is up to date' % spec.short_artifact_id)

        def build(build_dir, artifact_dir, logger):
            target_dir = pjoin(build_dir, TARGET_DIRNAME)
            if os.path.isdir(deps.target_dir):
                logger.info('reusing compiled dependencies from %s' % deps.artifact_id)
                copy_tree_into(deps.target_dir, target_dir)
            # the sources must be newer than anything in target/, which was
            # compiled from the stubs
            src_dir = pjoin(build_dir, 'src')
            os.mkdir(src_dir)
            inputs.source.copy_to(inputs.src_dir, src_dir, inputs.files)
            env = {'ARTIFACT': artifact_dir,
                   'BUILD': build_dir,
                   'CARGO_TARGET_DIR': target_dir,
                   'PATH': self.toolchain.search_path()}
            env.update(inputs.env)
            try:
                run_job(logger, [self.toolchain.build_command], env, src_dir)
            except JobFailedError as e:
                raise PackageBuildError('building %s failed (code=%s)' % (inputs.name, e.returncode),
                                        build_dir, e.output)
            install_program(self.layout, target_dir, cargo_profile_dir(self.toolchain.build_command),
                            artifact_dir)
            install_man_pages(self.layout.generated_dir(src_dir), artifact_dir, logger)
            install_shell_completions(self.layout, src_dir, artifact_dir, logger)

        artifact_id, path = self.build_store.ensure_present(spec, build, keep_build=keep_build)
        return PackageArtifact(artifact_id, path, self.layout, deps)
