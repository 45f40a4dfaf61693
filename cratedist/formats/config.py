"""
Handles reading the pipeline configuration file. By default this is
``cratedist.yaml`` at the root of the workspace; when it is absent the
defaults below describe the ``typst`` workspace.

Example::

    program:
      name: typst
      cli_crate: typst-cli
      aliases: [typst-dev]
    version_env_var: TYPST_VERSION
    platform_dependencies:
      darwin: [darwin.apple_sdk.frameworks.CoreServices, libiconv]
    store:
      build_stores:
      - dir: ~/.cratedist/store
      build_temp: ~/.cratedist/bld
      gc_roots: ~/.cratedist/gcroots
"""

import copy
import os
from os.path import join as pjoin

from .marked_yaml import load_yaml_from_file, validate_yaml, raw_tree, ValidationError
from ..core.sources import SOURCE_PATTERNS
from ..core.platform import DEFAULT_PLATFORM_DEPENDENCIES

DEFAULT_CONFIG_FILENAME = 'cratedist.yaml'
DEFAULT_STORE_DIR = '.cratedist'

_string_list = {"type": "array", "items": {"type": "string"}}
_command = {"type": "array", "items": {"type": "string"}, "minItems": 1}

config_schema = {
    "$schema": "http://json-schema.org/draft-04/schema#",
    "title": "cratedist configuration file schema",
    "type": "object",
    "properties": {
        "program": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "pattern": "^[a-zA-Z0-9_+-]+$"},
                "cli_crate": {"type": "string"},
                "main_program": {"type": "string"},
                "aliases": _string_list,
            },
            "additionalProperties": False,
        },
        "artifacts_dir": {"type": "string"},
        "version_env_var": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        "toolchain": {
            "type": "object",
            "properties": {
                "components": _string_list,
                "dependency_command": _command,
                "build_command": _command,
                "env": {"type": "object", "additionalProperties": {"type": "string"}},
                "path": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "platform_dependencies": {
            "type": "object",
            "additionalProperties": _string_list,
        },
        "tool_dependencies": _string_list,
        "dev_shell": {
            "type": "object",
            "properties": {
                "packages": _string_list,
            },
            "additionalProperties": False,
        },
        "tool_envs": {
            "type": "object",
            "additionalProperties": _string_list,
        },
        "store": {
            "type": "object",
            "properties": {
                "build_stores": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"dir": {"type": "string"}},
                        "required": ["dir"],
                    },
                    "minItems": 1,
                },
                "build_temp": {"type": "string"},
                "gc_roots": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "sources": {
            "type": "object",
            "properties": {
                "patterns": dict(_string_list, minItems=1),
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

CARGO_BUILD = ['cargo', 'build', '--release', '--locked']

DEFAULTS = {
    'program': {
        'name': 'typst',
        'cli_crate': 'typst-cli',
        'main_program': None,
        'aliases': ['typst-dev'],
    },
    'artifacts_dir': 'artifacts',
    'version_env_var': 'TYPST_VERSION',
    'toolchain': {
        'components': ['rustc', 'cargo', 'rust-src'],
        'dependency_command': CARGO_BUILD,
        'build_command': CARGO_BUILD,
        'env': {},
        'path': None,
    },
    'platform_dependencies': DEFAULT_PLATFORM_DEPENDENCIES,
    'tool_dependencies': ['installShellFiles'],
    'dev_shell': {
        'packages': ['openssl'],
    },
    'tool_envs': {
        'intellij-env': ['rustc', 'cargo', 'rust-src'],
    },
    'store': {
        'build_stores': [{'dir': pjoin(DEFAULT_STORE_DIR, 'store')}],
        'build_temp': pjoin(DEFAULT_STORE_DIR, 'bld'),
        'gc_roots': pjoin(DEFAULT_STORE_DIR, 'gcroots'),
    },
    'sources': {
        'patterns': list(SOURCE_PATTERNS),
    },
}

# sections merged key by key with DEFAULTS; everything else is replaced whole
_MERGED_SECTIONS = ('program', 'toolchain', 'dev_shell', 'store', 'sources')


def _ensure_dir(path, logger):
    if not os.path.isdir(path):
        logger.info('%s does not exist, creating it.' % path)
        os.makedirs(path)
    return path


def _make_abs(basedir, path):
    path = os.path.expanduser(path)
    if not os.path.isabs(path):
        return os.path.realpath(pjoin(basedir, path))
    else:
        return path


def merge_defaults(doc):
    """Returns a copy of `doc` (raw, validated) with missing entries taken
    from :data:`DEFAULTS`
    """
    result = copy.deepcopy(DEFAULTS)
    for key, value in doc.items():
        if key in _MERGED_SECTIONS:
            result[key].update(value)
        else:
            result[key] = value
    program = result['program']
    if program['main_program'] is None:
        program['main_program'] = program['name']
    if 'default' in program['aliases']:
        raise ValidationError(None, '"default" can not be used as a package alias')
    return result


def finalize_config(doc, basedir, logger):
    """Merges defaults and makes the store directories and the toolchain
    search path absolute (relative to `basedir`); store directories are
    created if missing.
    """
    config = merge_defaults(doc)
    toolchain = config['toolchain']
    if toolchain['path'] is not None:
        toolchain['path'] = os.pathsep.join(_make_abs(basedir, p)
                                            for p in toolchain['path'].split(os.pathsep) if p)
    store = config['store']
    for entry in store['build_stores']:
        entry['dir'] = _ensure_dir(_make_abs(basedir, entry['dir']), logger)
    for key in ['build_temp', 'gc_roots']:
        store[key] = _ensure_dir(_make_abs(basedir, store[key]), logger)
    return config


def load_config_file(filename, logger):
    """
    Load a cratedist.yaml file, validate it, merge in defaults and create
    missing store directories.
    """
    basedir = os.path.dirname(os.path.realpath(filename))
    doc = load_yaml_from_file(filename)
    if doc is None or (not isinstance(doc, dict) and not doc):
        doc = {}
    validate_yaml(doc, config_schema)
    return finalize_config(raw_tree(doc), basedir, logger)


def load_workspace_config(src_dir, logger, filename=None):
    """Loads `filename`, or ``cratedist.yaml`` in `src_dir` if present;
    otherwise returns the defaults with the store placed under `src_dir`.
    """
    if filename is None:
        candidate = pjoin(src_dir, DEFAULT_CONFIG_FILENAME)
        if not os.path.exists(candidate):
            logger.info('No %s in %s, using defaults' % (DEFAULT_CONFIG_FILENAME, src_dir))
            return finalize_config({}, os.path.realpath(src_dir), logger)
        filename = candidate
    return load_config_file(filename, logger)
