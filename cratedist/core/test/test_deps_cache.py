import os
from os.path import join as pjoin

from ..build_inputs import assemble_build_inputs
from ..build_store import BuildStore
from ..common import DependencyResolutionError
from ..deps_cache import DependencyCacheBuilder
from ..manifest import WorkspaceManifest
from ..sources import SourceSelection, STUB_SOURCE
from ..toolenv import Toolchain
from .utils import (temp_dir, dump, cat, make_workspace, make_config, cargo_calls,
                    assert_raises, logger)


def make_builder(d, platform='linux'):
    config, bin_dir = make_config(d)
    store = BuildStore.create_from_config(config, logger)
    toolchain = Toolchain.create_from_config(config, path=bin_dir)
    inputs = assemble_build_inputs(config, pjoin(d, 'ws'), WorkspaceManifest('typst', '0.12.0'),
                                   '0.12.0 (dirty)', platform, SourceSelection())
    return DependencyCacheBuilder(store, toolchain, logger), inputs

def test_build_and_cache_hit():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        builder, inputs = make_builder(d)
        assert builder.lookup(inputs) is None
        deps = builder.ensure(inputs)
        assert deps.artifact_id.startswith('typst-deps/')
        assert os.path.exists(pjoin(deps.target_dir, 'release', 'deps', 'libcomemo.rlib'))
        # the toolchain only ever sees stubs in place of the program's crate roots
        assert cat(pjoin(deps.target_dir, 'release', 'deps', 'seen-main.rs')) == STUB_SOURCE

        again = builder.ensure(inputs)
        assert again.artifact_id == deps.artifact_id
        assert again.path == deps.path
        assert builder.lookup(inputs).path == deps.path
        assert cargo_calls(d) == ['deps']

def test_program_edits_reuse_cache():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        builder, inputs = make_builder(d)
        key = builder.cache_key(inputs)
        builder.ensure(inputs)
        dump(pjoin(d, 'ws', 'crates', 'typst-cli', 'src', 'main.rs'), 'fn main() { other(); }\n')
        dump(pjoin(d, 'ws', 'README.md'), 'changed\n')
        builder, inputs = make_builder(d)
        assert builder.cache_key(inputs) == key
        builder.ensure(inputs)
        assert cargo_calls(d) == ['deps']

def test_lockfile_edit_rebuilds():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        builder, inputs = make_builder(d)
        key = builder.cache_key(inputs)
        builder.ensure(inputs)
        dump(pjoin(d, 'ws', 'Cargo.lock'), 'version = 3\n')
        builder, inputs = make_builder(d)
        assert builder.cache_key(inputs) != key
        builder.ensure(inputs)
        assert cargo_calls(d) == ['deps', 'deps']

def test_platform_changes_key():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        linux_builder, linux_inputs = make_builder(d, 'linux')
        darwin_builder, darwin_inputs = make_builder(d, 'darwin')
        assert linux_builder.cache_key(linux_inputs) != darwin_builder.cache_key(darwin_inputs)

def test_failure_publishes_nothing():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        with open(pjoin(d, 'ws', 'Cargo.toml'), 'a') as f:
            f.write('broken-dep = "1.0"\n')
        builder, inputs = make_builder(d)
        with assert_raises(DependencyResolutionError) as r:
            builder.ensure(inputs)
        assert 'broken-dep' in r.exc_val.output
        assert builder.lookup(inputs) is None
        assert os.listdir(pjoin(builder.build_store.artifact_root, 'typst-deps')) == []
