import os
import sys
import tempfile
import shutil
import functools
import contextlib
import inspect
from textwrap import dedent

from ..fileutils import silent_makedirs, rmtree_write_protected

import logging
from cratedist.util.logger_setup import configure_logging

from os.path import join as pjoin


def make_abs_temp_dir():
    """Create a temporary directory and get its absolute path"""
    return os.path.realpath(tempfile.mkdtemp())


# We always use the context manager form
class AssertRaisesResult(object):
    pass

@contextlib.contextmanager
def assert_raises(wanted_exc_type):
    r = AssertRaisesResult()
    try:
        yield r
    except Exception:
        exc_type, exc_val, exc_tb = sys.exc_info()
        if not issubclass(exc_type, wanted_exc_type):
            assert False, 'Wanted exception %r but got %r' % (
                wanted_exc_type, exc_type)
        r.exc_type = exc_type
        r.exc_val = exc_val
        r.exc_tb = exc_tb
    else:
        assert False, 'Expected exception not raised'


@contextlib.contextmanager
def temp_dir():
    tempdir = make_abs_temp_dir()
    try:
        yield tempdir
    finally:
        # the build store write-protects what it publishes
        rmtree_write_protected(tempdir)

@contextlib.contextmanager
def temp_working_dir():
    with temp_dir() as tempdir:
        with working_directory(tempdir):
            yield tempdir

@contextlib.contextmanager
def working_directory(path):
    old = os.getcwd()
    try:
        os.chdir(path)
        yield
    finally:
        os.chdir(old)

def cat(filename):
    with open(filename) as f:
        return f.read()

def dump(filename, contents):
    d = os.path.dirname(filename)
    if d:
        silent_makedirs(d)
    with open(filename, 'w') as f:
        f.write(dedent(contents))

def dump_executable(filename, contents):
    dump(filename, contents)
    os.chmod(filename, 0o755)

def temp_working_dir_fixture(func):
    assert not inspect.isgeneratorfunction(func)
    @functools.wraps(func)
    def replacement():
        with temp_working_dir() as d:
            return func(d)
    # hide the wrapped signature from pytest's fixture lookup
    del replacement.__wrapped__
    return replacement


VERBOSE = bool(int(os.environ.get('VERBOSE', '0')))
if VERBOSE:
    configure_logging('DEBUG')
    logger = logging.getLogger()
else:
    configure_logging('WARNING')
    logger = logging.getLogger('null_logger')

#
# Mock workspace
#
WORKSPACE_FILES = {
    'Cargo.toml': '''\
        [workspace]
        members = ["crates/*"]
        resolver = "2"

        [workspace.package]
        version = "0.12.0"
        edition = "2021"

        [workspace.dependencies]
        comemo = "0.4"
        ''',
    'Cargo.lock': '''\
        version = 3

        [[package]]
        name = "comemo"
        version = "0.4.0"
        ''',
    'crates/typst-cli/Cargo.toml': '''\
        [package]
        name = "typst-cli"
        version.workspace = true

        [[bin]]
        name = "typst"
        path = "src/main.rs"
        ''',
    'crates/typst-cli/build.rs': 'fn main() { println!("cargo:rerun-if-env-changed=GEN_ARTIFACTS"); }\n',
    'crates/typst-cli/src/main.rs': 'fn main() { typst::run(); }\n',
    'crates/typst-cli/src/args.rs': 'pub struct CliArguments;\n',
    'crates/typst/Cargo.toml': '''\
        [package]
        name = "typst"
        version.workspace = true
        ''',
    'crates/typst/src/lib.rs': 'pub fn run() {}\n',
    'assets/fonts/README': 'fonts\n',
    'tests/suite.rs': '#[test] fn suite() {}\n',
    'README.md': '# Typst\n',
    'docs/guide.md': '# Guide\n',
    '.github/workflows/ci.yml': 'on: push\n',
}

def make_workspace(d, files=WORKSPACE_FILES):
    for relpath, contents in files.items():
        dump(pjoin(d, *relpath.split('/')), contents)
    return d

#
# Mock toolchain
#
# The fake cargo compiles nothing. For the dependency-only build (no
# GEN_ARTIFACTS) it records the main.rs it sees and leaves a fake rlib
# behind; the package build requires that rlib and produces the program
# and the generated artifacts. Every invocation is appended to
# $FAKE_CARGO_LOG. A workspace manifest mentioning "broken-dep" fails the
# dependency build, a file named broken.rs fails the package build, and a
# file named skip-artifacts suppresses the generated artifacts.
FAKE_CARGO = r'''#!/bin/sh
set -e
if grep -q broken-dep Cargo.toml; then
    echo "error: failed to select a version for the requirement broken-dep"
    exit 101
fi
mkdir -p "$CARGO_TARGET_DIR/release/deps"
if [ -z "$GEN_ARTIFACTS" ]; then
    cp crates/typst-cli/src/main.rs "$CARGO_TARGET_DIR/release/deps/seen-main.rs"
    echo compiled > "$CARGO_TARGET_DIR/release/deps/libcomemo.rlib"
    echo deps >> "$FAKE_CARGO_LOG"
    exit 0
fi
if [ -f crates/typst-cli/src/broken.rs ]; then
    echo "error[E0425]: cannot find value x in this scope"
    exit 101
fi
test -f "$CARGO_TARGET_DIR/release/deps/libcomemo.rlib"
printf '#!/bin/sh\necho "typst %s"\nexit ${1:-0}\n' "$TYPST_VERSION" > "$CARGO_TARGET_DIR/release/typst"
chmod +x "$CARGO_TARGET_DIR/release/typst"
echo package >> "$FAKE_CARGO_LOG"
if [ ! -f crates/typst-cli/skip-artifacts ]; then
    out="crates/typst-cli/$GEN_ARTIFACTS"
    mkdir -p "$out"
    echo ".TH TYPST 1" > "$out/typst.1"
    echo ".TH TYPST-COMPILE 1" > "$out/typst-compile.1"
    echo "complete -F _typst typst" > "$out/typst.bash"
    echo "complete -c typst" > "$out/typst.fish"
    echo "#compdef typst" > "$out/_typst"
fi
'''

def make_fake_toolchain(d):
    """Creates fake ``cargo`` and ``rustc`` in `d`/bin and a sysroot with
    standard library sources; returns the bin directory
    """
    bin_dir = pjoin(d, 'bin')
    sysroot = pjoin(d, 'sysroot')
    dump(pjoin(sysroot, 'lib', 'rustlib', 'src', 'rust', 'library', 'core', 'lib.rs'), '')
    dump_executable(pjoin(bin_dir, 'cargo'), FAKE_CARGO)
    dump_executable(pjoin(bin_dir, 'rustc'), '#!/bin/sh\necho %s\n' % sysroot)
    return bin_dir

def cargo_calls(d):
    """Phases the fake cargo has built, in order"""
    try:
        return cat(pjoin(d, 'cargo.log')).split()
    except FileNotFoundError:
        return []

def make_config(d, **overrides):
    """Pipeline configuration with the fake toolchain and the store below `d`"""
    from cratedist.formats.config import finalize_config
    bin_dir = make_fake_toolchain(pjoin(d, 'toolchain'))
    cargo = pjoin(bin_dir, 'cargo')
    doc = {
        'toolchain': {
            'dependency_command': [cargo, 'build', '--release', '--locked'],
            'build_command': [cargo, 'build', '--release', '--locked'],
            'env': {'FAKE_CARGO_LOG': pjoin(d, 'cargo.log')},
        },
        'dev_shell': {'packages': []},
        'store': {
            'build_stores': [{'dir': 'store'}],
            'build_temp': 'bld',
            'gc_roots': 'gcroots',
        },
    }
    doc.update(overrides)
    return finalize_config(doc, d, logger), bin_dir

def make_pipeline(d, revision=None, platform='linux', keep_build='never', **overrides):
    """A pipeline for the mock workspace in `d`/ws (created if missing)"""
    from ..outputs import Pipeline
    from ..toolenv import Toolchain
    from ..version import RevisionInfo
    ws = pjoin(d, 'ws')
    if not os.path.exists(ws):
        make_workspace(ws)
    config, bin_dir = make_config(d, **overrides)
    toolchain = Toolchain.create_from_config(config, path=bin_dir)
    return Pipeline(config, ws, RevisionInfo(revision), logger, platform=platform,
                    keep_build=keep_build, toolchain=toolchain)
