"""
:mod:`cratedist.core.version` --- Build identifier
==================================================

The build identifier is the string the program reports for
``--version``: the manifest version followed by the revision the
workspace was built from, e.g. ``0.12.0 (abc1234)``. It is computed
once, before building, and handed to the compiler as an environment
variable; it is never computed at run time.

When no revision is available (not a git checkout, or a checkout with
uncommitted changes) the revision is replaced by ``dirty``.
"""

import os
import subprocess

DIRTY_MARKER = 'dirty'

SHORT_REV_LEN = 7


class RevisionInfo(object):
    """The version-control revision of the workspace, or `None` if unavailable

    This is always passed explicitly; nothing in the pipeline reads the
    revision from ambient state.
    """

    __slots__ = ('revision',)

    def __init__(self, revision=None):
        if revision is not None and not revision:
            raise ValueError('revision must be a non-empty string or None')
        object.__setattr__(self, 'revision', revision)

    def __setattr__(self, key, value):
        raise AttributeError('RevisionInfo is immutable')

    def __eq__(self, other):
        return isinstance(other, RevisionInfo) and self.revision == other.revision

    def __hash__(self):
        return hash(self.revision)

    def __repr__(self):
        return 'RevisionInfo(%r)' % self.revision

    @property
    def is_available(self):
        return self.revision is not None


def resolve_build_identifier(version, revision_info=None):
    """Returns ``"{version} ({revision})"``, using :data:`DIRTY_MARKER` when
    `revision_info` is `None` or carries no revision.
    """
    if revision_info is None or not revision_info.is_available:
        rev = DIRTY_MARKER
    else:
        rev = revision_info.revision
    return '%s (%s)' % (version, rev)


def _git(repo_dir, *args):
    cmd = ['git', '-C', repo_dir] + list(args)
    p = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                         stdin=subprocess.DEVNULL)
    out, err = p.communicate()
    return p.returncode, out.decode('UTF-8', 'replace'), err.decode('UTF-8', 'replace')


def revision_from_git(repo_dir, logger):
    """
    Probes the git working tree at `repo_dir` for its short revision.

    Returns ``RevisionInfo(None)`` if git is not installed, `repo_dir` is
    not inside a git checkout, or the working tree has uncommitted
    changes.
    """
    try:
        retcode, out, err = _git(repo_dir, 'rev-parse', '--short=%d' % SHORT_REV_LEN, 'HEAD')
    except OSError as e:
        logger.debug('git not available (%s), revision is %s' % (e, DIRTY_MARKER))
        return RevisionInfo(None)
    if retcode != 0:
        logger.debug('%s is not a git checkout: %s' % (repo_dir, err.strip()))
        return RevisionInfo(None)
    rev = out.strip()
    retcode, out, err = _git(repo_dir, 'status', '--porcelain', '--untracked-files=no')
    if retcode != 0 or out.strip():
        logger.info('Working tree %s has uncommitted changes, revision is %s'
                    % (os.path.realpath(repo_dir), DIRTY_MARKER))
        return RevisionInfo(None)
    return RevisionInfo(rev)
