"""
:mod:`cratedist.core.hasher` -- Utilities for hashing
=====================================================

Every cache key in cratedist is a digest produced here: build specs
are hashed with :func:`hash_document`, file trees are streamed through
:class:`Hasher`.
"""

import json
import hashlib
import base64
import struct

hash_type = hashlib.sha256

FILE_CHUNK_SIZE = 64 * 1024


def check_no_floating_point(doc):
    """Verifies that the document `doc` does not contain floating-point numbers.
    """
    if isinstance(doc, float):
        raise TypeError("floating-point number not allowed in document")
    elif isinstance(doc, dict):
        for k, v in doc.items():
            check_no_floating_point(k)
            check_no_floating_point(v)
    elif isinstance(doc, (list, tuple)):
        for item in doc:
            check_no_floating_point(item)


def hash_document(doctype, doc):
    """
    Computes a hash from a document. This is done by serializing to as
    compact JSON as possible with sorted keys, then perform sha256.
    The string ``{doctype}|`` is prepended to the hashed string
    and serves to make sure different kind of documents yield different
    hashes even if they are identical.

    Floating-point numbers are not supported (these have multiple
    representations).
    """
    check_no_floating_point(doc)
    serialized = json.dumps(doc, indent=None, sort_keys=True, separators=(',', ':'),
                            ensure_ascii=True, allow_nan=False)
    h = hash_type((doctype + '|').encode('UTF-8'))
    h.update(serialized.encode('UTF-8'))
    return format_digest(h)


def prune_nohash(doc):
    """
    Returns a copy of the document with every key/value-pair whose key
    starts with ``'nohash_'`` is removed.
    """
    if isinstance(doc, (int, bool, float, str)) or doc is None:
        r = doc
    elif isinstance(doc, dict):
        r = {}
        for key, value in doc.items():
            assert isinstance(key, str)
            if not key.startswith('nohash_'):
                r[key] = prune_nohash(value)
    elif isinstance(doc, (list, tuple)):
        r = [prune_nohash(child) for child in doc]
    else:
        raise TypeError('document contains illegal type %r' % type(doc))
    return r


class DocumentSerializer(object):
    """
    Stable non-Python-specific serialization of nested
    objects/documents, used for hashing. No de-serialization is
    implemented.

    The API used is that of ``hashlib`` (i.e. an update method).

    Supported types: ints, floats, True, False, None, bytes, str,
    lists/tuples and dicts with string keys. Objects with a
    ``get_secure_hash`` method are serialized as the
    ``(type_id, secure_hash)`` tuple it returns.

    Every object is emitted with an envelope giving its type and
    length, so ``"3"``, ``3`` and ``3.0`` serialize differently while
    ``(1,)`` and ``[1]`` serialize the same. Dict items are emitted in
    key order.

    Parameters
    ----------

    wrapped : object
        `wrapped.update` is called with bytes to emit the resulting
        stream (the API of the ``hashlib`` hashers)
    """
    def __init__(self, wrapped):
        self._wrapped = wrapped

    def _emit(self, s):
        self._wrapped.update(s.encode('ascii') if isinstance(s, str) else s)

    def update(self, x):
        if isinstance(x, (bytes, bytearray, memoryview)):
            x = bytes(x)
            self._emit('B%d:' % len(x))
            self._emit(x)
        elif isinstance(x, str):
            self.update(x.encode('UTF-8'))
        elif x is True:
            self._emit('T')
        elif x is False:
            self._emit('F')
        elif x is None:
            self._emit('N')
        elif isinstance(x, float):
            s = struct.pack('<d', x)
            self._emit('F')
            self._emit(s)
        elif isinstance(x, int):
            s = str(x)
            self._emit('I%d:' % len(s))
            self._emit(s)
        elif isinstance(x, (list, tuple)):
            self._emit('L%d:' % len(x))
            for child in x:
                self.update(child)
        elif isinstance(x, dict):
            self._emit('D%d:' % len(x))
            for key in x:
                if not isinstance(key, str):
                    raise NotImplementedError('hashing of dict with non-string key')
            for key in sorted(x):
                self.update(key)
                self.update(x[key])
        elif hasattr(x, 'get_secure_hash'):
            x_type, h = x.get_secure_hash()
            self._emit('O%d:' % len(x_type))
            self._emit(x_type)
            self._emit('%d:' % len(h))
            self._emit(h)
        elif isinstance(x, (set, frozenset)):
            raise TypeError('sets not supported')
        else:
            raise TypeError('cannot serialize object of type %r' % type(x))


class Hasher(DocumentSerializer):
    """
    Cryptographically hashes buffers or nested objects ("JSON-like" object
    structures). See :class:`DocumentSerializer` for more details.
    """
    def __init__(self, x=None):
        DocumentSerializer.__init__(self, hash_type())
        if x is not None:
            self.update(x)

    def digest(self):
        return self._wrapped.digest()

    def format_digest(self):
        return format_digest(self._wrapped)


def hash_file(filename):
    """Returns the standard digest of the contents of `filename`"""
    h = hash_type()
    with open(filename, 'rb') as f:
        while True:
            chunk = f.read(FILE_CHUNK_SIZE)
            if not chunk:
                break
            h.update(chunk)
    return format_digest(h)


def format_digest(hasher):
    """The standard format for encoding hash digests::

        base64.b32encode(hasher.digest()[:20]).lower()

    Parameters
    ----------
    hasher : hasher object
        An object with a `digest` method (a :class:`Hasher` or
        an object from the :mod:`hashlib` module)
    """
    return base64.b32encode(hasher.digest()[:20]).decode('ascii').lower()
