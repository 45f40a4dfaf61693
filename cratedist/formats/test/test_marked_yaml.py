from ..marked_yaml import (marked_yaml_load, raw_tree, validate_yaml, ValidationError,
                           ExpectedKeyMissingError, is_null)
from ...core.test.utils import assert_raises


def test_marked_yaml():
    def loc(obj):
        return (obj.start_mark.line, obj.start_mark.column, obj.end_mark.line, obj.end_mark.column)

    d = marked_yaml_load( # note: test very sensitive to whitespace in string below
    '''\
    a:
      [b, c, {d: e}]
    f:
      g: h''')

    assert d == {'a': ['b', 'c', {'d': 'e'}], 'f': {'g': 'h'}}
    assert loc(d['a'][2]['d']) == (1, 17, 1, 18)
    assert loc(d) == (0, 4, 3, 10)
    assert loc(d['a']) == (1, 6, 1, 20)

    assert isinstance(d['a'][2]['d'], str)
    assert isinstance(d, dict)
    assert isinstance(d['f'], dict)
    assert isinstance(d['a'], list)

def test_missing_key_reports_location():
    d = marked_yaml_load('program:\n  name: typst\n')
    with assert_raises(ExpectedKeyMissingError) as r:
        d['program']['cli_crate']
    assert 'line 2' in str(r.exc_val)
    assert isinstance(r.exc_val, KeyError)

def test_raw_tree():
    d = marked_yaml_load('a: [1, true, null, x]\nb: {c: 2}\n')
    raw = raw_tree(d)
    assert raw == {'a': [1, True, None, 'x'], 'b': {'c': 2}}
    assert type(raw['a'][0]) is int
    assert type(raw['a'][3]) is str
    assert is_null(d['a'][2])

def test_validate_yaml():
    schema = {'type': 'object', 'properties': {'aliases': {'type': 'array'}}}
    validate_yaml(marked_yaml_load('aliases: [typst-dev]\n'), schema)
    doc = marked_yaml_load('# comment\naliases: typst-dev\n')
    with assert_raises(ValidationError) as r:
        validate_yaml(doc, schema)
    assert str(r.exc_val).startswith('<unicode string>, line 2: ')
    assert "is not of type 'array'" in str(r.exc_val)
