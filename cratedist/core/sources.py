"""
:mod:`cratedist.core.sources` --- Source selection
==================================================

Only a fixed subset of the workspace is visible to the build. A path
(relative to the workspace root, ``/``-separated) is selected when it
fully matches at least one of :data:`SOURCE_PATTERNS`::

    (assets|crates|tests)(/.*)?     build-relevant directories
    Cargo\\.(toml|lock)              manifest and lockfile
    build\\.rs                       build script

Directories are filtered too: a directory that matches no pattern is
dropped together with everything below it. Since every cache key is
computed from the selected files only, editing anything else
(documentation, CI configuration, ...) never triggers a rebuild.
Symlinked directories are followed; a link back into a directory that
is already being walked is skipped.

Copies made by :meth:`SourceSelection.copy_to` carry the time of the
copy, not the original modification time. The package build lays the
copy over a ``target`` directory compiled from stubs, and Cargo decides
freshness by modification time: the real sources must be newer than
anything compiled from the stubs.

The pattern list is a cache-correctness invariant; changing it changes
which edits cause rebuilds.

Dependency skeleton
-------------------

The dependency-only build must not see the program's own source,
otherwise every edit would invalidate the dependency cache. The
:class:`DependencySkeleton` of a selection holds every ``Cargo.toml``,
the ``Cargo.lock``, and an identical stub in place of each crate
target root (``src/main.rs``, ``src/lib.rs``, ``src/bin/*.rs``,
``build.rs``, ...). Target roots declared explicitly in a crate's
manifest (``[lib] path``, ``[[bin]] path``, ``package.build``, ...) get
a stub as well. Cargo can resolve and compile the full dependency
graph from it, and its digest only changes when dependency
declarations or the lockfile change.
"""

import os
import posixpath
import re
import shutil
import tomllib
from os.path import join as pjoin

from .common import ManifestParseError
from .hasher import Hasher, hash_file
from .fileutils import silent_makedirs

SOURCE_PATTERNS = (
    r'(assets|crates|tests)(/.*)?',
    r'Cargo\.(toml|lock)',
    r'build\.rs',
)

MANIFEST_NAMES = ('Cargo.toml', 'Cargo.lock')

STUB_SOURCE = 'pub fn main() {}\n'

# target roots of a crate, relative to the crate directory
_TARGET_ROOT_RE = re.compile(r'(src/(main|lib)\.rs|src/bin/[^/]+\.rs|build\.rs|'
                             r'(benches|examples|tests)/[^/]+\.rs)')


def _relpath(path, root):
    rel = os.path.relpath(path, root)
    return '' if rel == '.' else rel.replace(os.sep, '/')


def _is_link_cycle(dirpath, name):
    """Whether the directory `name` in `dirpath` links back to `dirpath` or one
    of its parents
    """
    path = pjoin(dirpath, name)
    if not os.path.islink(path):
        return False
    target = os.path.realpath(path)
    here = os.path.realpath(dirpath)
    return here == target or here.startswith(target + os.sep)


class SourceSelection(object):
    """
    An ordered list of path regexes; a path is selected when any of them
    matches it fully.

    Parameters
    ----------

    patterns : sequence of str
        Defaults to :data:`SOURCE_PATTERNS`.
    """

    def __init__(self, patterns=SOURCE_PATTERNS):
        self.patterns = tuple(patterns)
        self._matchers = [re.compile(p) for p in self.patterns]

    def __repr__(self):
        return 'SourceSelection(%r)' % (self.patterns,)

    def matches(self, relpath):
        return any(m.fullmatch(relpath) for m in self._matchers)

    def select(self, root):
        """Returns the sorted relative paths of all selected files below `root`"""
        root = os.path.realpath(root)
        selected = []
        for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
            reldir = _relpath(dirpath, root)
            prefix = reldir + '/' if reldir else ''
            # prune in place so os.walk never descends into dropped directories
            dirnames[:] = sorted(d for d in dirnames if self.matches(prefix + d)
                                 and not _is_link_cycle(dirpath, d))
            for fname in filenames:
                relpath = prefix + fname
                if self.matches(relpath):
                    selected.append(relpath)
        return sorted(set(selected))

    def digest(self, root, files=None):
        """Content digest of the selected files (paths, executable bits and contents)"""
        if files is None:
            files = self.select(root)
        return digest_files(root, files)

    def copy_to(self, root, target, files=None):
        """Copies the selected files from `root` into the directory `target`;
        the copies get the current time as modification time
        """
        if files is None:
            files = self.select(root)
        for relpath in files:
            src = pjoin(root, *relpath.split('/'))
            dest = pjoin(target, *relpath.split('/'))
            silent_makedirs(os.path.dirname(dest))
            shutil.copyfile(src, dest)
            shutil.copymode(src, dest)
            os.utime(dest)
        return files

    def dependency_skeleton(self, root, files=None):
        if files is None:
            files = self.select(root)
        return DependencySkeleton(root, files)


def digest_files(root, files):
    h = Hasher()
    entries = []
    for relpath in files:
        path = pjoin(root, *relpath.split('/'))
        entries.append([relpath, os.access(path, os.X_OK), hash_file(path)])
    h.update(entries)
    return h.format_digest()


class DependencySkeleton(object):
    """
    The part of a source selection needed to build the dependency graph
    only: manifests copied verbatim, target roots replaced by stubs.

    Parameters
    ----------

    root : str
        Workspace root.

    files : list of str
        Selected relative paths (see :meth:`SourceSelection.select`).
    """

    def __init__(self, root, files):
        self.root = root
        self.manifests = [f for f in files if f.rsplit('/', 1)[-1] in MANIFEST_NAMES]
        crate_dirs = set(posixpath.dirname(f) for f in self.manifests
                         if f.endswith('Cargo.toml'))
        stubs = set()
        for f in files:
            crate_dir = _find_crate_dir(f, crate_dirs)
            if crate_dir is None:
                continue
            rel_to_crate = f[len(crate_dir) + 1:] if crate_dir else f
            if _TARGET_ROOT_RE.fullmatch(rel_to_crate):
                stubs.add(f)
        for crate_dir in crate_dirs:
            stubs.update(declared_target_roots(root, crate_dir))
        self.stubs = sorted(stubs)

    def digest(self):
        h = Hasher()
        h.update({'manifests': digest_files(self.root, self.manifests),
                  'stubs': self.stubs,
                  'stub_source': STUB_SOURCE})
        return h.format_digest()

    def materialize(self, target):
        """Writes the skeleton into the directory `target`"""
        for relpath in self.manifests:
            dest = pjoin(target, *relpath.split('/'))
            silent_makedirs(os.path.dirname(dest))
            shutil.copyfile(pjoin(self.root, *relpath.split('/')), dest)
        for relpath in self.stubs:
            dest = pjoin(target, *relpath.split('/'))
            silent_makedirs(os.path.dirname(dest))
            with open(dest, 'w') as f:
                f.write(STUB_SOURCE)


def declared_target_roots(root, crate_dir):
    """Target root paths the manifest in `crate_dir` declares explicitly, as
    workspace-relative paths

    Paths escaping the workspace are ignored.
    """
    crate_path = pjoin(root, *crate_dir.split('/')) if crate_dir else root
    filename = pjoin(crate_path, 'Cargo.toml')
    try:
        with open(filename, 'rb') as f:
            doc = tomllib.load(f)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseError('%s: %s' % (filename, e))

    declared = []
    build = doc.get('package', {}).get('build')
    if isinstance(build, str):
        declared.append(build)
    lib = doc.get('lib', {})
    if isinstance(lib, dict) and isinstance(lib.get('path'), str):
        declared.append(lib['path'])
    for kind in ('bin', 'example', 'test', 'bench'):
        targets = doc.get(kind, [])
        if not isinstance(targets, list):
            continue
        for entry in targets:
            if isinstance(entry, dict) and isinstance(entry.get('path'), str):
                declared.append(entry['path'])

    result = []
    for path in declared:
        path = path.replace('\\', '/')
        if posixpath.isabs(path):
            continue
        relpath = posixpath.normpath(posixpath.join(crate_dir, path))
        if relpath == '..' or relpath.startswith('../'):
            continue
        result.append(relpath)
    return result


def _find_crate_dir(relpath, crate_dirs):
    """Returns the innermost directory in `crate_dirs` containing `relpath`"""
    d = posixpath.dirname(relpath)
    while True:
        if d in crate_dirs:
            return d
        if not d:
            return None
        d = posixpath.dirname(d)
