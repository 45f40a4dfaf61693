"""
:mod:`cratedist.core.manifest` --- Workspace manifest reader
============================================================

Reads the name and version of the program from the workspace
manifest (``Cargo.toml``)::

    [workspace.package]
    version = "0.12.0"

The document is otherwise opaque to cratedist; only the
``workspace.package`` table is consulted.
"""

import tomllib

from .build_store import assert_safe_name
from .common import ManifestParseError

MANIFEST_FILENAME = 'Cargo.toml'
LOCKFILE_FILENAME = 'Cargo.lock'


class WorkspaceManifest(object):
    """The ``{name, version}`` pair read from the workspace manifest"""

    __slots__ = ('name', 'version')

    def __init__(self, name, version):
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'version', version)

    def __setattr__(self, key, value):
        raise AttributeError('WorkspaceManifest is immutable')

    def __eq__(self, other):
        return (isinstance(other, WorkspaceManifest) and
                (self.name, self.version) == (other.name, other.version))

    def __hash__(self):
        return hash((self.name, self.version))

    def __repr__(self):
        return 'WorkspaceManifest(name=%r, version=%r)' % (self.name, self.version)


def _lookup(doc, path, filename):
    node = doc
    for step in path:
        if not isinstance(node, dict) or step not in node:
            raise ManifestParseError('%s: missing required field %s' % (filename, '.'.join(path)))
        node = node[step]
    if not isinstance(node, str) or not node:
        raise ManifestParseError('%s: field %s must be a non-empty string' % (filename, '.'.join(path)))
    return node


def read_manifest(filename, name=None):
    """
    Parses the manifest and returns its :class:`WorkspaceManifest`.

    Parameters
    ----------

    filename : str
        Path to the manifest document.

    name : str (optional)
        Program name to use when the manifest has no
        ``workspace.package.name`` (the usual case for Cargo workspaces,
        where the name lives in the member crates).

    Raises :class:`ManifestParseError` if the file can not be read, is not
    valid TOML, or lacks the required fields.
    """
    try:
        with open(filename, 'rb') as f:
            doc = tomllib.load(f)
    except OSError as e:
        raise ManifestParseError('unable to read manifest %s: %s' % (filename, e.strerror))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseError('%s: %s' % (filename, e))

    version = _lookup(doc, ('workspace', 'package', 'version'), filename)
    package = doc['workspace']['package']
    if 'name' in package:
        name = _lookup(doc, ('workspace', 'package', 'name'), filename)
    elif name is None:
        raise ManifestParseError('%s: missing required field workspace.package.name' % filename)
    for field, value in (('name', name), ('version', version)):
        try:
            assert_safe_name(value)
        except ValueError:
            raise ManifestParseError('%s: %s %r contains characters outside [a-zA-Z0-9_+.-]'
                                     % (filename, field, value))
    return WorkspaceManifest(name, version)
