import io
import json
import os
from os.path import join as pjoin

from ..main import command_line_entry_point, help_on_exceptions
from ...core.test.utils import (temp_working_dir_fixture, dump, make_workspace, make_fake_toolchain,
                                cargo_calls)


def setup_workspace(d):
    ws = make_workspace(pjoin(d, 'ws'))
    bin_dir = make_fake_toolchain(pjoin(d, 'toolchain'))
    cargo = pjoin(bin_dir, 'cargo')
    doc = {
        'toolchain': {
            'components': ['cargo'],
            'path': bin_dir,
            'dependency_command': [cargo, 'build', '--release', '--locked'],
            'build_command': [cargo, 'build', '--release', '--locked'],
            'env': {'FAKE_CARGO_LOG': pjoin(d, 'cargo.log')},
        },
        'dev_shell': {'packages': []},
    }
    # JSON is valid YAML
    dump(pjoin(ws, 'cratedist.yaml'), json.dumps(doc, indent=2))
    return ws

def cratedist(ws, *args, **kw):
    out = io.StringIO()
    argv = ['cratedist', '--src-dir', ws, '--revision', 'abc1234'] + list(args)
    retcode = help_on_exceptions(command_line_entry_point, argv, os.environ,
                                 secondary=True, out_stream=out)
    assert retcode == kw.get('expected_status', 0)
    return out.getvalue()


@temp_working_dir_fixture
def test_version(d):
    ws = setup_workspace(d)
    assert cratedist(ws, 'version') == '0.12.0 (abc1234)\n'

@temp_working_dir_fixture
def test_sources(d):
    ws = setup_workspace(d)
    files = cratedist(ws, 'sources').splitlines()
    assert 'Cargo.lock' in files
    assert 'crates/typst-cli/src/main.rs' in files
    assert 'README.md' not in files
    assert 'cratedist.yaml' not in files
    assert not [f for f in files if f.startswith('.cratedist')]
    digests = cratedist(ws, 'sources', '--digest').splitlines()
    assert [line.split(':')[0] for line in digests] == ['source', 'dependencies']

@temp_working_dir_fixture
def test_build_and_gc(d):
    ws = setup_workspace(d)
    path = cratedist(ws, 'build').strip()
    assert os.path.realpath('result') == path
    assert os.path.isfile(pjoin('result', 'bin', 'typst'))
    assert cargo_calls(d) == ['deps', 'package']

    # a second build is a cache hit
    assert cratedist(ws, 'build', '--no-link').strip() == path
    assert cargo_calls(d) == ['deps', 'package']

    cratedist(ws, 'gc')
    assert os.path.isdir(path)

@temp_working_dir_fixture
def test_build_deps(d):
    ws = setup_workspace(d)
    path = cratedist(ws, 'build-deps').strip()
    assert os.path.isdir(pjoin(path, 'target'))
    assert cargo_calls(d) == ['deps']

@temp_working_dir_fixture
def test_build_unknown_package(d):
    ws = setup_workspace(d)
    cratedist(ws, 'build', 'typst-nightly', expected_status=2)
    assert cargo_calls(d) == []

@temp_working_dir_fixture
def test_run(d):
    ws = setup_workspace(d)
    cratedist(ws, 'run', '3', expected_status=3)
    cratedist(ws, 'run')

@temp_working_dir_fixture
def test_outputs(d):
    ws = setup_workspace(d)
    out = cratedist(ws, 'outputs')
    assert out.splitlines() == ['packages: default intellij-env typst-dev',
                                'apps: default',
                                'devShells: default',
                                'overlay: intellij-env typst-dev']
    assert cargo_calls(d) == []

@temp_working_dir_fixture
def test_develop_print_env(d):
    ws = setup_workspace(d)
    out = cratedist(ws, 'develop', '--print-env')
    env = dict(line.split('=', 1) for line in out.splitlines())
    assert env['CRATEDIST_DEVSHELL'] == 'default'
    assert os.path.islink(pjoin(env['PATH'].split(os.pathsep)[0], 'cargo'))
    assert cargo_calls(d) == []

@temp_working_dir_fixture
def test_build_failure(d):
    ws = setup_workspace(d)
    dump(pjoin(ws, 'crates', 'typst-cli', 'src', 'broken.rs'), 'x\n')
    cratedist(ws, 'build', expected_status=1)
    assert not os.path.exists('result')

@temp_working_dir_fixture
def test_broken_config(d):
    ws = setup_workspace(d)
    dump(pjoin(ws, 'cratedist.yaml'), 'program: [typst]\n')
    cratedist(ws, 'version', expected_status=127)

@temp_working_dir_fixture
def test_purge(d):
    ws = setup_workspace(d)
    cratedist(ws, 'purge', '*', expected_status=1)
    path = cratedist(ws, 'build-deps').strip()
    cratedist(ws, 'purge', '--force', '*')
    assert not os.path.exists(path)

@temp_working_dir_fixture
def test_help(d):
    ws = setup_workspace(d)
    assert 'build-deps' in cratedist(ws, 'help')
    assert '--keep-build' in cratedist(ws, 'help', 'build')
