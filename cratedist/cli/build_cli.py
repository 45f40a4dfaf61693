import argparse
import json

from .main import register_subcommand
from ..core.common import json_formatting_options


def add_keep_build_argument(ap):
    ap.add_argument('-k', '--keep-build', default='never', choices=['never', 'error', 'always'],
                    help='Whether to keep the temporary build directory (default: never)')


@register_subcommand
class Version(object):
    """
    Prints the build identifier the program would be built with, e.g.::

        $ cratedist version
        0.12.0 (abc1234)

    The revision is ``dirty`` when the working tree has uncommitted
    changes.
    """

    @staticmethod
    def setup(ap):
        pass

    @staticmethod
    def run(ctx, args):
        ctx.write('%s\n' % ctx.get_pipeline().build_identifier())


@register_subcommand
class Sources(object):
    """
    Lists the workspace files visible to the build.

    Only these files contribute to the cache keys; editing any other
    file never triggers a rebuild. With ``--digest`` the digests of the
    selection and of the dependency skeleton are printed instead.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('--digest', action='store_true', help='Print digests instead of files')

    @staticmethod
    def run(ctx, args):
        inputs = ctx.get_pipeline().inputs()
        if args.digest:
            ctx.write('source: %s\n' % inputs.source_digest)
            ctx.write('dependencies: %s\n' % inputs.dependency_source_digest)
        else:
            for relpath in inputs.files:
                ctx.write('%s\n' % relpath)


@register_subcommand
class BuildDeps(object):
    """
    Builds (or finds in the build store) the dependency-only artifact and
    prints its location.
    """
    command = 'build-deps'

    @staticmethod
    def setup(ap):
        add_keep_build_argument(ap)

    @staticmethod
    def run(ctx, args):
        deps = ctx.get_pipeline(args.keep_build).dependency_cache()
        ctx.write('%s\n' % deps.path)


@register_subcommand
class Build(object):
    """
    Builds a package and links it as ``result`` in the current directory.

    Example::

        $ cratedist build
        $ ./result/bin/typst --version

    Any package listed by ``cratedist outputs`` can be built, e.g.
    ``cratedist build intellij-env``. The link is registered as a gc root.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('package', nargs='?', default='default', help='Package to build')
        ap.add_argument('--link', default='result', help='Name of the symlink to create')
        ap.add_argument('--no-link', action='store_true', help='Do not create a symlink')
        add_keep_build_argument(ap)

    @staticmethod
    def run(ctx, args):
        pipeline = ctx.get_pipeline(args.keep_build)
        packages = pipeline.packages()
        if args.package not in packages:
            ctx.logger.error('No package named %s; available: %s'
                             % (args.package, ', '.join(packages)))
            return 2
        pkg = packages[args.package]
        if not args.no_link:
            pipeline.build_store.create_symlink_to_artifact(pkg.artifact_id, args.link)
        ctx.write('%s\n' % pkg.path)


@register_subcommand
class Run(object):
    """
    Builds the package if needed and runs its main program; all further
    arguments are passed on, and the exit code of the program is the
    exit code of the command::

        $ cratedist run -- compile doc.typ
    """

    @staticmethod
    def setup(ap):
        add_keep_build_argument(ap)
        ap.add_argument('arguments', nargs=argparse.REMAINDER, help='Arguments for the program')

    @staticmethod
    def run(ctx, args):
        arguments = list(args.arguments)
        if arguments[:1] == ['--']:
            arguments = arguments[1:]
        return ctx.get_pipeline(args.keep_build).app().run(arguments)


@register_subcommand
class Develop(object):
    """
    Starts a shell with the toolchain and the development packages on
    ``PATH``. The program itself is not built.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('--shell', default=None, help='Shell to run (default: $SHELL)')
        ap.add_argument('--print-env', action='store_true',
                        help='Print the environment variables set instead of starting a shell')

    @staticmethod
    def run(ctx, args):
        shell = ctx.get_pipeline().dev_shell()
        if args.print_env:
            env = shell.environment({'PATH': ctx.env.get('PATH', '')})
            for key, value in sorted(env.items()):
                ctx.write('%s=%s\n' % (key, value))
            return
        return shell.spawn(args.shell, ctx.env)


@register_subcommand
class Outputs(object):
    """
    Lists the outputs of the workspace: packages, apps, dev shells and the
    overlay. Nothing is built unless ``--describe`` is given, which builds
    everything and prints the store locations as JSON.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('--describe', action='store_true', help='Build all outputs, print JSON')

    @staticmethod
    def run(ctx, args):
        pipeline = ctx.get_pipeline()
        if args.describe:
            json.dump(pipeline.describe(), ctx.out_stream, **json_formatting_options)
            ctx.write('\n')
            return
        ctx.write('packages: %s\n' % ' '.join(pipeline.packages()))
        ctx.write('apps: %s\n' % ' '.join(pipeline.apps()))
        ctx.write('devShells: %s\n' % ' '.join(pipeline.dev_shells()))
        ctx.write('overlay: %s\n' % ' '.join(pipeline.overlay()))
