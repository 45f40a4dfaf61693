import sys

from .main import register_subcommand
from ..core.build_store import BuildStore


@register_subcommand
class Gc(object):
    """
    Removes every artifact not reachable from a gc root (a ``result``
    link created by ``cratedist build``), together with the remains of
    interrupted builds.
    """

    @staticmethod
    def setup(ap):
        pass

    @staticmethod
    def run(ctx, args):
        store = BuildStore.create_from_config(ctx.get_config(), ctx.logger)
        removed = store.gc()
        ctx.logger.info('Removed %d artifact director%s' % (len(removed), 'y' if len(removed) == 1 else 'ies'))


@register_subcommand
class Purge(object):
    """
    Removes a build artifact from the build store. The specific artifact ID must be
    given, e.g.::

        $ cratedist purge typst-deps/4niostz3iktl

    Alternatively, to wipe the entire build store::

        $ cratedist purge --force '*'

    Remember to quote in your shell.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('artifact_id')
        ap.add_argument('--force', action='store_true', help='Needed to delete more than 1 artifact')

    @staticmethod
    def run(ctx, args):
        store = BuildStore.create_from_config(ctx.get_config(), ctx.logger)
        if args.artifact_id == '*':
            if not args.force:
                ctx.logger.error('Did not use --force flag')
                return 1
            store.delete_all()
        else:
            path = store.delete(args.artifact_id)
            if path is None:
                sys.stderr.write('Artifact %s not found\n' % args.artifact_id)
            else:
                sys.stderr.write('Removed directory: %s\n' % path)
