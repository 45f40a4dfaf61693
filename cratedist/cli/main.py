"""Main entry-point

Other ``cratedist.cli.*`` modules register their sub-commands using the
:func:`register_subcommand` decorator.
"""

import argparse
import os
import sys
import textwrap
import traceback

from ..core.common import BuildPipelineError
from ..core.outputs import Pipeline
from ..core.version import RevisionInfo, revision_from_git
from ..formats.config import load_workspace_config, DEFAULT_CONFIG_FILENAME
from ..formats.marked_yaml import ValidationError

import logging
logger = logging.getLogger()
from ..util.logger_setup import set_log_level, configure_logging, has_error_occurred

#
# sub-command registration
#

_subcommands = {}

def register_subcommand(cls, command=None):
    """Register a subcommand for the ``cratedist`` command-line tool

    The provided `cls` should provide the following (see :cls:`Help` below
    for an example):

     - ``cls.__doc__`` is used as the help text; the first line is used as
       the one-liner in the command overview
     - ``cls.setup`` should be a function/static method that configures
       the passed-in argument parser
     - ``cls.run`` runs the command
    """
    if command is None:
        command = getattr(cls, 'command', cls.__name__.lower())
    _subcommands[command] = cls
    return cls


class CrateDistCommandContext(object):
    def __init__(self, argparser, subcommand_parsers, out_stream, src_dir, config_filename,
                 revision, platform, env, logger):
        self.argparser = argparser
        self.subcommand_parsers = subcommand_parsers
        self.out_stream = out_stream
        self.src_dir = os.path.realpath(src_dir)
        self.env = env
        self.logger = logger
        self.platform = platform
        self._config_filename = config_filename
        self._revision = revision
        self._config = None

    def get_config(self):
        if self._config is None:
            self._config = load_workspace_config(self.src_dir, self.logger, self._config_filename)
        return self._config

    def get_revision_info(self):
        if self._revision is not None:
            return RevisionInfo(self._revision)
        return revision_from_git(self.src_dir, self.logger)

    def get_pipeline(self, keep_build='never'):
        return Pipeline(self.get_config(), self.src_dir, self.get_revision_info(), self.logger,
                        platform=self.platform, keep_build=keep_build)

    def write(self, text):
        self.out_stream.write(text)

    def error(self, msg):
        self.argparser.error(msg)


def _parse_docstring(doc):
    # extract help one-liner
    for line in doc.splitlines():
        s = line.strip()
        if s:
            help = s
            break
    assert help
    # make description help text; do some light ReST->terminal for now
    description = textwrap.dedent(doc)
    description = description.replace('::\n', ':\n').replace('``', '"')
    return help, description


def command_line_entry_point(unparsed_argv, env, secondary=False, out_stream=None):
    """
    The main ``cratedist`` command-line entry point

    Arguments:
    ----------

    unparsed_argv : list of str
        The unparsed command line arguments (including the program name)

    env : dict
        Environment

    secondary : boolean
        When set, the logging configuration is left alone (used when
        cratedist is driven from within another Python program, e.g. the
        tests).

    out_stream : file-like (optional)
        Where command results are written; defaults to ``sys.stdout``.
    """
    description = textwrap.dedent('''
    Builds a Cargo workspace in two cached phases (dependencies, then the
    program) and exposes the result as packages, an app and a dev shell.
    ''')

    parser = argparse.ArgumentParser(prog='cratedist', description=description,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('--src-dir', default='.',
                        help='Workspace root (default: current directory)')
    parser.add_argument('--config-file', default=None,
                        help='Location of configuration file (default: %s in the workspace)'
                        % DEFAULT_CONFIG_FILENAME)
    parser.add_argument('--revision', default=None,
                        help='Revision to build as, instead of asking git')
    parser.add_argument('--platform', default=None,
                        help='Target platform tag (default: the host platform)')
    parser.add_argument('--log', default=None,
                        help='One of [DEBUG, INFO, ERROR, WARNING, CRITICAL]')

    subparser_group = parser.add_subparsers(title='subcommands')

    subcmd_parsers = {}
    for name, cls in sorted(_subcommands.items()):
        help, description = _parse_docstring(cls.__doc__)
        subcmd_parser = subparser_group.add_parser(
            name=name, help=help, description=description,
            formatter_class=argparse.RawDescriptionHelpFormatter)

        cls.setup(subcmd_parser)
        subcmd_parser.add_argument('-v', '--verbose', action='store_true', help='More verbose output')

        subcmd_parser.set_defaults(subcommand_handler=cls.run, parser=parser,
                                   subcommand=name)
        # Can't find an API to access subparsers through parser? Pass along explicitly in ctx
        # (needed by Help)
        subcmd_parsers[name] = subcmd_parser

    if len(unparsed_argv) == 1:
        # Print help by default rather than an error about too few arguments
        parser.print_help()
        return 1
    args = parser.parse_args(unparsed_argv[1:])
    if not hasattr(args, 'subcommand_handler'):
        parser.print_help()
        return 1

    if not secondary:
        configure_logging(args.log)
        if args.verbose:
            set_log_level('DEBUG')
            if args.log is not None:
                logger.warning('-v overrides --log to DEBUG')

    if out_stream is None:
        out_stream = sys.stdout
    ctx = CrateDistCommandContext(parser, subcmd_parsers, out_stream, args.src_dir,
                                  args.config_file, args.revision, args.platform, env, logger)

    retcode = args.subcommand_handler(ctx, args)
    if retcode is None:
        retcode = 0
    return retcode


def help_on_exceptions(func, *args, **kw):
    """Present exceptions in a human-friendly form

    Calls func (typically a "main" function), and returns the return code.
    Pipeline errors (a failed build, a broken manifest, ...) are logged and
    give return code 1; when the toolchain produced output, it is written
    to stderr unmodified. Anything else is a bug: the stack trace is logged
    and the return code is 127.

    If the 'DEBUG' environment variable is set then the exception is
    raised anyway.
    """
    try:
        debug = len(os.environ['DEBUG']) > 0
    except KeyError:
        debug = logging.getLogger().getEffectiveLevel() <= logging.DEBUG

    try:
        return func(*args, **kw)

    except KeyboardInterrupt:
        if debug:
            raise
        else:
            logger.info('Interrupted')
            return 127
    except SystemExit:
        raise
    except BuildPipelineError as e:
        if debug:
            raise
        else:
            output = getattr(e, 'output', None)
            if output:
                sys.stderr.write(output)
            logger.critical(str(e))
            build_dir = getattr(e, 'build_dir', None)
            if build_dir is not None and os.path.exists(build_dir):
                logger.critical('Build directory kept at %s' % build_dir)
            return 1
    except ValidationError as e:
        if debug:
            raise
        else:
            logger.critical(str(e))
            return 127
    except OSError as e:
        if debug:
            raise
        else:
            logger.critical(str(e))
            return 127
    except Exception:
        if debug:
            raise
        else:
            if not has_error_occurred():
                logger.critical("Uncaught exception:")
                for line in traceback.format_exc().splitlines():
                    logger.critical(line)
                text = """\
                This exception has not been translated to a human-friendly error
                message, please file an issue pasting this stack trace.
                """
                text = textwrap.fill(textwrap.dedent(text), width=78)
                logger.info('')
                for line in text.splitlines():
                    logger.critical(line)
            return 127


def main():
    sys.exit(help_on_exceptions(command_line_entry_point, sys.argv, os.environ))

#
# help command
#

@register_subcommand
class Help(object):
    """
    Displays help about sub-commands
    """
    @staticmethod
    def setup(ap):
        ap.add_argument('command', help='The command to print help for', nargs='?')

    @staticmethod
    def run(ctx, args):
        if args.command is None:
            ctx.argparser.print_help(ctx.out_stream)
        else:
            try:
                subcmd_parser = ctx.subcommand_parsers[args.command]
            except KeyError:
                ctx.error('Unknown sub-command: %s' % args.command)
            subcmd_parser.print_help(ctx.out_stream)


# sub-command modules register themselves on import
from . import build_cli, store_cli
