"""
:mod:`cratedist.core.build_store` --- Build artifact store
==========================================================

The build store holds build results identified by hash-IDs. It is the
cache shared by all invocations: an artifact is only ever built when
no artifact with the same ID is present.

Artifact IDs
------------

An artifact ID has the form ``name/hash``, e.g.,
``typst-deps/4niostz3iktlg67najtxuwwgss5vl6k4``. The hash is the hash of
the *build spec*, a JSON-like document describing everything that
goes into the build (see :class:`BuildSpec`). If you know the build
spec, you know the artifact ID. Keys of the spec starting with
``nohash_`` are kept in ``build.json`` but do not contribute to the
hash.

On disk the artifact lives in ``<artifact_root>/<name>/<hash[:12]>``.

Atomic publishing
-----------------

A build runs in a temporary build directory and installs into a
staging directory next to its final location. Only when everything
succeeded is the ``id`` marker written and the staging directory
renamed into place; on any failure the staging directory is removed.
Thus an artifact either resolves complete, or not at all, and an
interrupted build simply leaves nothing behind to be reused. There is
no locking: two concurrent builds of the same ID produce the same
result and the second rename loses harmlessly.

Artifact layout
---------------

**id**: the full artifact ID; its presence marks a complete artifact.

**build.json**: the build spec.

**artifact.json**: name, ID, version and the IDs of the artifacts this
one was built against (used by garbage collection).

**build.log.gz**: the log of the build, including all toolchain output.
"""

import os
from os.path import join as pjoin
import re
import errno
import json
import base64
import tempfile

from .hasher import hash_document, prune_nohash
from .common import (IllegalBuildStoreError, BuildFailedError,
                     json_formatting_options, SHORT_ARTIFACT_ID_LEN)
from .fileutils import (silent_unlink, robust_rmtree, silent_makedirs, gzip_compress,
                        write_protect, rmtree_write_protected, atomic_symlink,
                        realpath_to_symlink)

from ..util.logger_setup import log_to_file, getLogger

LOG_DIRNAME = '_cratedist'


class BuildSpec(object):
    """Wraps a build spec document

    The document is wrapped in order to a) signal that is has been
    canonicalized, b) make the artifact id available under the
    artifact_id attribute.
    """

    def __init__(self, build_spec):
        self.doc = canonicalize_build_spec(build_spec)
        self.name = self.doc['name']
        digest = hash_document('build-spec', prune_nohash(self.doc))
        self.digest = digest
        self.artifact_id = '%s/%s' % (self.name, digest)
        self.short_artifact_id = '%s/%s' % (self.name, digest[:SHORT_ARTIFACT_ID_LEN])

    def __repr__(self):
        return '<BuildSpec %s>' % self.short_artifact_id


def as_build_spec(obj):
    if isinstance(obj, BuildSpec):
        return obj
    else:
        return BuildSpec(obj)


def canonicalize_build_spec(spec):
    """Puts the build spec on a canonical form + basic validation

    Returns a shallow copy; `name` and `version` are checked and
    `dependencies` (artifact IDs the build reads) is sorted.
    """
    result = dict(spec)
    assert_safe_name(result['name'])
    assert_safe_name(result.get('version', 'n'))
    result['dependencies'] = sorted(result.get('dependencies', []))
    return result


_SAFE_NAME_RE = re.compile(r'[a-zA-Z0-9_+.-]+$')
def assert_safe_name(x):
    """Raises a ValueError if x does not match ``[a-zA-Z0-9-_+.]+``.

    Returns `x`
    """
    if not _SAFE_NAME_RE.match(x):
        raise ValueError('version or name "%s" is empty or contains illegal characters' % x)
    return x


def shorten_artifact_id(artifact_id, length=SHORT_ARTIFACT_ID_LEN):
    """Shortens the hash part of the artifact_id to the desired length
    """
    name, digest = artifact_id.split('/')
    return '%s/%s' % (name, digest[:length])


class BuildStore(object):
    """
    Manages the directory of build artifacts; this is the entry point for
    kicking off builds as well.

    Parameters
    ----------

    temp_build_dir : str
        Directory to use for temporary builds (these may be removed or linger
        depending on `keep_build` passed to :meth:`ensure_present`).

    artifact_root : str
        Root of artifacts. Garbage collection never removes anything
        outside of this directory.

    gc_roots_dir : str
        Directory of symlinks to symlinks to artifacts. Artifacts reached
        through these will not be collected in garbage collection.

    logger : Logger
    """

    def __init__(self, temp_build_dir, artifact_root, gc_roots_dir, logger, create_dirs=False):
        self.temp_build_dir = os.path.realpath(temp_build_dir)
        self.artifact_root = os.path.realpath(artifact_root)
        self.gc_roots_dir = gc_roots_dir
        self.logger = logger
        if create_dirs:
            for d in [self.temp_build_dir, self.artifact_root, self.gc_roots_dir]:
                silent_makedirs(d)

    @staticmethod
    def create_from_config(config, logger, **kw):
        """Creates a BuildStore from the ``store`` section of the configuration
        """
        store = config['store']
        if len(store['build_stores']) != 1:
            logger.error("Only a single build store currently supported")
            raise NotImplementedError()

        return BuildStore(store['build_temp'],
                          store['build_stores'][0]['dir'],
                          store['gc_roots'],
                          logger,
                          **kw)

    def _get_artifact_path(self, name, digest):
        return pjoin(self.artifact_root, name, digest[:SHORT_ARTIFACT_ID_LEN])

    def resolve(self, artifact_id):
        """Given an artifact_id, resolve the path for it, or return
        None if the artifact isn't built.
        """
        name, digest = artifact_id.split('/')
        path = self._get_artifact_path(name, digest)
        try:
            f = open(pjoin(path, 'id'))
        except FileNotFoundError:
            return None
        with f:
            present_id = f.read().strip()
        if present_id != artifact_id:
            self.logger.error('An artifact with a hash that agrees in the first %d characters '
                              'is already present. The two hashes are:' % SHORT_ARTIFACT_ID_LEN)
            self.logger.error('')
            self.logger.error('    %s (already present)' % present_id)
            self.logger.error('    %s (wants to access/build)' % artifact_id)
            self.logger.error('')
            raise IllegalBuildStoreError('Hashes collide in first %d chars: %s and %s'
                                         % (SHORT_ARTIFACT_ID_LEN, present_id, artifact_id))
        return path

    def is_present(self, build_spec):
        build_spec = as_build_spec(build_spec)
        return self.resolve(build_spec.artifact_id) is not None

    def ensure_present(self, build_spec, build_func, keep_build='never'):
        """
        Builds an artifact (if it is not already present).

        Parameters
        ----------

        build_spec : BuildSpec or document

        build_func : callable
            ``build_func(build_dir, artifact_dir, logger)`` performs the
            build, installing into `artifact_dir`. Any exception it
            raises aborts the build and is propagated unchanged.

        keep_build : str
            One of ``never``, ``error``, ``always``.

        Returns
        -------

        (artifact_id, artifact_dir)
        """
        if keep_build not in ('never', 'error', 'always'):
            raise ValueError("invalid keep_build value")
        build_spec = as_build_spec(build_spec)
        artifact_dir = self.resolve(build_spec.artifact_id)
        if artifact_dir is None:
            builder = ArtifactBuilder(self, build_spec, build_func)
            artifact_dir = builder.build(keep_build)
        else:
            self.logger.debug('%s is present at %s' % (build_spec.short_artifact_id, artifact_dir))
        return build_spec.artifact_id, artifact_dir

    def make_staging_dir(self, build_spec):
        """
        Makes a directory to put the result of the artifact build in. It is
        renamed to the final location by :meth:`publish`.
        """
        parent = pjoin(self.artifact_root, build_spec.name)
        silent_makedirs(parent)
        return tempfile.mkdtemp(prefix='.staging-%s-' % build_spec.digest[:SHORT_ARTIFACT_ID_LEN],
                                dir=parent)

    def publish(self, build_spec, staging_dir):
        """Atomically moves a complete staging directory into place"""
        final = self._get_artifact_path(build_spec.name, build_spec.digest)
        if os.path.exists(final) and not os.path.exists(pjoin(final, 'id')):
            self.logger.warning('Removing incomplete artifact directory %s' % final)
            rmtree_write_protected(final)
        try:
            os.rename(staging_dir, final)
        except OSError as e:
            if e.errno not in (errno.EEXIST, errno.ENOTEMPTY):
                raise
            # somebody else published the same artifact meanwhile
            self.resolve(build_spec.artifact_id)
            rmtree_write_protected(staging_dir)
        return final

    def make_build_dir(self, build_spec):
        """Creates a temporary build directory

        Just to get a nicer name than mkdtemp would. The caller is responsible
        for removal.
        """
        silent_makedirs(self.temp_build_dir)
        name = build_spec.short_artifact_id.replace('/', '-')
        build_dir = orig_build_dir = pjoin(self.temp_build_dir, name)
        i = 0
        # Try to make build_dir, if not then increment a -%d suffix until we
        # find a free slot
        while True:
            try:
                os.makedirs(build_dir)
            except FileExistsError:
                pass
            else:
                break
            i += 1
            build_dir = '%s-%d' % (orig_build_dir, i)
        self.logger.debug('Created build dir: %s' % build_dir)
        return build_dir

    def remove_build_dir(self, build_dir):
        self.logger.debug('Removing build dir: %s' % build_dir)
        robust_rmtree(build_dir, self.logger)

    def serialize_build_spec(self, build_spec, target_dir):
        fname = pjoin(target_dir, 'build.json')
        with open(fname, 'w') as f:
            json.dump(build_spec.doc, f, **json_formatting_options)
            f.write('\n')
        write_protect(fname)

    def delete(self, artifact_id):
        """Deletes an artifact ID from the store. This is simply an
        `rmtree`, i.e., it is possible to delete an artifact other
        artifacts or gc roots refer to.

        Returns the path that was removed, or `None` if no path was present.
        """
        name, digest = artifact_id.split('/')
        path = self._get_artifact_path(name, digest)
        if os.path.exists(path):
            rmtree_write_protected(path)
            return path
        else:
            return None

    def delete_all(self):
        """Deletes every artifact in the store; gc roots are dropped too"""
        for name in os.listdir(self.artifact_root):
            self.logger.info('Removing %s' % name)
            rmtree_write_protected(pjoin(self.artifact_root, name))
        for gc_root in os.listdir(self.gc_roots_dir):
            silent_unlink(pjoin(self.gc_roots_dir, gc_root))

    def _encode_symlink(self, symlink):
        """Format of managed entries in gc_roots directory; an underscore + base64"""
        encoded = base64.b64encode(symlink.encode('UTF-8')).decode('ascii')
        return '_' + encoded.replace('=', '-').replace('/', '_')

    def create_symlink_to_artifact(self, artifact_id, symlink_target):
        """Creates a symlink to an artifact (e.g. a ``result`` link)

        The symlink can be placed anywhere the users wants to access it. In addition
        to the symlink being created, it is listed in gc_roots.

        The symlink will be created atomically, any target
        file/symlink will be overwritten.
        """
        symlink_target = realpath_to_symlink(os.path.abspath(symlink_target))
        artifact_dir = self.resolve(artifact_id)
        if artifact_dir is None:
            raise IllegalBuildStoreError('artifact %s is not present' % artifact_id)
        atomic_symlink(artifact_dir, symlink_target)
        silent_makedirs(self.gc_roots_dir)
        root_name = self._encode_symlink(symlink_target)
        atomic_symlink(symlink_target, pjoin(self.gc_roots_dir, root_name))

    def remove_symlink_to_artifact(self, symlink_target):
        symlink_target = realpath_to_symlink(os.path.abspath(symlink_target))
        root_name = self._encode_symlink(symlink_target)
        silent_unlink(pjoin(self.gc_roots_dir, root_name))
        silent_unlink(symlink_target)

    def gc(self):
        """Run garbage collection, removing any unneeded artifacts.

        Everything reachable from a gc root (the artifact itself and the
        artifacts it was built against) is kept.
        """
        # mark phase
        marked = set()
        for gc_root in os.listdir(self.gc_roots_dir):
            try:
                f = open(pjoin(self.gc_roots_dir, gc_root, 'artifact.json'))
            except OSError as e:
                if e.errno in (errno.ENOENT, errno.ENOTDIR):
                    self.logger.warning("GC root link does not lead to artifact, removing: %s" % gc_root)
                    silent_unlink(pjoin(self.gc_roots_dir, gc_root))
                else:
                    raise
            else:
                with f:
                    doc = json.load(f)
                marked.add(doc['id'])
                marked.update(doc['dependencies'])
        for artifact_id in sorted(marked):
            self.logger.info('Keeping %s' % shorten_artifact_id(artifact_id))
        # sweep phase
        removed = []
        for artifact_name in os.listdir(self.artifact_root):
            for short_digest in os.listdir(pjoin(self.artifact_root, artifact_name)):
                artifact_dir = pjoin(self.artifact_root, artifact_name, short_digest)
                artifact_id_file = pjoin(artifact_dir, 'id')
                try:
                    with open(artifact_id_file) as f:
                        artifact_id = f.read().strip()
                except FileNotFoundError:
                    # staging directory or remains of an interrupted build
                    artifact_id = None
                if artifact_id not in marked:
                    self.logger.info('Removing %s' % (shorten_artifact_id(artifact_id)
                                                      if artifact_id else artifact_dir))
                    os.chmod(artifact_dir, 0o777)
                    # remove 'id' first, to de-mark the artifact as valid
                    silent_unlink(artifact_id_file)
                    rmtree_write_protected(artifact_dir)
                    removed.append(artifact_dir)
        return removed


class ArtifactBuilder(object):
    def __init__(self, build_store, build_spec, build_func):
        self.build_store = build_store
        self.logger = getLogger('package', build_spec.name)
        self.build_spec = build_spec
        self.artifact_id = build_spec.artifact_id
        self.build_func = build_func

    def find_complete_dependencies(self):
        """Return set of complete dependencies of the build spec

        The listed dependencies must be present; their own dependencies
        (from their artifact.json) are included as well.
        """
        deps = set()
        for artifact_id in self.build_spec.doc.get('dependencies', []):
            deps.add(artifact_id)
            artifact_dir = self.build_store.resolve(artifact_id)
            if artifact_dir is None:
                msg = 'Required artifact not already present: %s' % artifact_id
                self.logger.error(msg)
                raise BuildFailedError(msg, None)
            with open(pjoin(artifact_dir, 'artifact.json')) as f:
                doc = json.load(f)
            deps.update(doc.get('dependencies', []))
        return deps

    def build(self, keep_build):
        deps = self.find_complete_dependencies()
        staging_dir = self.build_store.make_staging_dir(self.build_spec)
        try:
            self.make_artifact_json(staging_dir, deps)
            self.build_to(staging_dir, keep_build)
        except BaseException:
            rmtree_write_protected(staging_dir)
            raise
        return self.build_store.publish(self.build_spec, staging_dir)

    def build_to(self, artifact_dir, keep_build):
        build_dir = self.build_store.make_build_dir(self.build_spec)
        should_keep = (keep_build == 'always')
        try:
            try:
                self.run_build(build_dir, artifact_dir)
                self.build_store.serialize_build_spec(self.build_spec, artifact_dir)
                # 'id' marks the finished build; written last
                with open(pjoin(artifact_dir, '_id'), 'w') as f:
                    f.write('%s\n' % self.build_spec.artifact_id)
                os.rename(pjoin(artifact_dir, '_id'), pjoin(artifact_dir, 'id'))
            except BaseException:
                should_keep = (keep_build in ('always', 'error'))
                if should_keep:
                    self.logger.error('Keeping build directory: %s' % build_dir)
                raise
        finally:
            if not should_keep:
                self.build_store.remove_build_dir(build_dir)

    def make_artifact_json(self, artifact_dir, deps):
        fname = pjoin(artifact_dir, 'artifact.json')
        doc = self.build_spec.doc
        artifact_doc = {'name': doc['name'], 'dependencies': sorted(deps),
                        'id': self.build_spec.artifact_id}
        if 'version' in doc:
            artifact_doc['version'] = doc['version']
        with open(fname, 'w') as f:
            json.dump(artifact_doc, f, **json_formatting_options)

    def run_build(self, build_dir, artifact_dir):
        os.mkdir(pjoin(build_dir, LOG_DIRNAME))
        log_filename = pjoin(build_dir, LOG_DIRNAME, 'build.log')
        self.logger.warning('Building %s, follow log with:' % self.build_spec.short_artifact_id)
        self.logger.warning('  tail -f %s' % log_filename)
        with log_to_file('package', log_filename):
            self.build_func(build_dir, artifact_dir, self.logger)
        gzip_compress(log_filename, pjoin(artifact_dir, 'build.log.gz'))
