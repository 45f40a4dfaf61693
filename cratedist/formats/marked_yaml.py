"""
A PyYAML loader subclass that annotates positions in the source, so
that configuration errors can point at a file and line.

The loader is based on ``yaml.SafeLoader``, but in addition every
dict/list/str/int is replaced with dict_node/list_node/str_node/int_node,
which subclass dict/list/str/int to add the attributes `start_mark` and
`end_mark` (see ``yaml.error.Mark``).
"""

import yaml
from yaml.error import Mark
import jsonschema


def _find_mark(doc):
    """Traverse a document to try to find a start_mark attribute"""
    if hasattr(doc, 'start_mark'):
        return doc.start_mark
    elif isinstance(doc, dict):
        for key, value in doc.items():
            mark = _find_mark(key) or _find_mark(value)
            if mark:
                return mark
    elif isinstance(doc, list):
        for item in doc:
            mark = _find_mark(item)
            if mark:
                return mark
    return None


class ValidationError(Exception):
    def __init__(self, mark, message=None, wrapped=None):
        if not isinstance(mark, Mark):
            mark = _find_mark(mark)
        Exception.__init__(self, message)
        self.mark = mark
        self.message = message
        self.wrapped = wrapped

    def __str__(self):
        loc = '<unknown location>' if self.mark is None else '%s, line %d' % (self.mark.name, self.mark.line + 1)
        return '%s: %s' % (loc, self.message)


class ExpectedKeyMissingError(KeyError, ValidationError):
    def __init__(self, mark, message, **kw):
        KeyError.__init__(self, message)
        ValidationError.__init__(self, mark, message, **kw)

    def __str__(self):
        return ValidationError.__str__(self)


def create_node_class(cls, name=None):
    class node_class(cls):
        def __init__(self, x, start_mark, end_mark):
            if cls is not object and cls is not str and cls is not int:
                cls.__init__(self, x)
            self.start_mark = start_mark
            self.end_mark = end_mark

        def __new__(klass, x, start_mark, end_mark):
            if cls is object:
                return object.__new__(klass)
            elif cls in (str, int):
                return cls.__new__(klass, x)
            else:
                return cls.__new__(klass)

    node_class.__name__ = name if name else '%s_node' % cls.__name__
    return node_class

list_node = create_node_class(list)
int_node = create_node_class(int)
str_node = create_node_class(str)


class null_node(create_node_class(object, name='null_node')):
    def __bool__(self):
        return False

    def __repr__(self):
        return "null"


def is_null(x):
    return type(x) is null_node or x is None


class dict_node(create_node_class(dict)):
    def __getitem__(self, key):
        try:
            return dict.__getitem__(self, key)
        except KeyError:
            raise ExpectedKeyMissingError(self, 'expected key "%s" not found' % key)


class MarkedLoader(yaml.SafeLoader):
    # The SafeConstructor constructors yield an empty object first and fill
    # it in when resumed; exhausting them gives the complete object.
    def construct_yaml_map(self, node):
        obj, = yaml.SafeLoader.construct_yaml_map(self, node)
        return dict_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_seq(self, node):
        obj, = yaml.SafeLoader.construct_yaml_seq(self, node)
        return list_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_str(self, node):
        obj = self.construct_scalar(node)
        return str_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_int(self, node):
        obj = yaml.SafeLoader.construct_yaml_int(self, node)
        return int_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_null(self, node):
        return null_node(None, node.start_mark, node.end_mark)

MarkedLoader.add_constructor('tag:yaml.org,2002:map', MarkedLoader.construct_yaml_map)
MarkedLoader.add_constructor('tag:yaml.org,2002:seq', MarkedLoader.construct_yaml_seq)
MarkedLoader.add_constructor('tag:yaml.org,2002:str', MarkedLoader.construct_yaml_str)
MarkedLoader.add_constructor('tag:yaml.org,2002:int', MarkedLoader.construct_yaml_int)
MarkedLoader.add_constructor('tag:yaml.org,2002:null', MarkedLoader.construct_yaml_null)


def marked_yaml_load(stream):
    loader = MarkedLoader(stream)
    try:
        return loader.get_single_data()
    finally:
        loader.dispose()


def load_yaml_from_file(filename):
    with open(filename) as f:
        return marked_yaml_load(f)


def _mark_for_path(doc, path):
    """Returns the mark of the deepest node along `path` that has one"""
    mark = _find_mark(doc) if not hasattr(doc, 'start_mark') else doc.start_mark
    for step in path:
        try:
            doc = doc[step]
        except (KeyError, IndexError, TypeError):
            break
        if hasattr(doc, 'start_mark'):
            mark = doc.start_mark
    return mark


def validate_yaml(doc, schema):
    try:
        jsonschema.validate(doc, schema)
    except jsonschema.ValidationError as e:
        raise ValidationError(_mark_for_path(doc, e.absolute_path), e.message, e)


def raw_tree(doc):
    """
    Converts a document consisting of node subclasses of
    str/dict/list/etc. to raw str/dict/list/etc.
    """
    if isinstance(doc, bool):
        return bool(doc)
    elif isinstance(doc, str):
        return str(doc)
    elif isinstance(doc, int):
        return int(doc)
    elif is_null(doc):
        return None
    elif isinstance(doc, float):
        return float(doc)
    elif isinstance(doc, dict):
        return dict((raw_tree(key), raw_tree(value)) for key, value in doc.items())
    elif isinstance(doc, (list, tuple)):
        return [raw_tree(child) for child in doc]
    else:
        raise TypeError('document contains illegal type %r' % type(doc))
