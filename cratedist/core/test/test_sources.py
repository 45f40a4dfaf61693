import os
import time
from os.path import join as pjoin

from ..sources import SourceSelection, SOURCE_PATTERNS, STUB_SOURCE, declared_target_roots
from ..common import ManifestParseError
from .utils import temp_dir, dump, cat, make_workspace, assert_raises


def test_matches_full_path_only():
    s = SourceSelection()
    for path in ['crates', 'crates/typst/src/lib.rs', 'assets/fonts/x.ttf', 'tests',
                 'tests/suite.rs', 'Cargo.toml', 'Cargo.lock', 'build.rs']:
        assert s.matches(path), path
    for path in ['README.md', 'docs/guide.md', 'cratesfoo', 'Cargo.tomlx', 'xCargo.toml',
                 'src/build.rs', '.github/workflows/ci.yml', 'crates-old/x.rs']:
        assert not s.matches(path), path

def test_select():
    with temp_dir() as d:
        make_workspace(d)
        files = SourceSelection().select(d)
        assert files == sorted(files)
        assert 'Cargo.toml' in files
        assert 'Cargo.lock' in files
        assert 'crates/typst-cli/src/main.rs' in files
        assert 'crates/typst-cli/build.rs' in files
        assert 'assets/fonts/README' in files
        assert 'tests/suite.rs' in files
        for f in files:
            assert not f.startswith(('docs', '.github', 'README'))

def test_unselected_directory_is_pruned():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection([r'.*\.rs', r'crates(/.*)?'])
        # docs/example.rs matches, but the docs directory does not
        dump(pjoin(d, 'docs', 'example.rs'), 'fn main() {}\n')
        files = s.select(d)
        assert 'docs/example.rs' not in files
        assert 'crates/typst/src/lib.rs' in files

def test_custom_patterns():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection(SOURCE_PATTERNS + (r'docs(/.*)?',))
        assert 'docs/guide.md' in s.select(d)

def test_digest_ignores_unselected_files():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection()
        before = s.digest(d)
        dump(pjoin(d, 'README.md'), '# Typst, the new README\n')
        dump(pjoin(d, 'docs', 'changelog.md'), '# Changes\n')
        assert before == s.digest(d)
        dump(pjoin(d, 'crates', 'typst', 'src', 'lib.rs'), 'pub fn run() { todo!() }\n')
        assert before != s.digest(d)

def test_digest_includes_executable_bit():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection()
        before = s.digest(d)
        os.chmod(pjoin(d, 'crates', 'typst-cli', 'build.rs'), 0o755)
        assert before != s.digest(d)

def test_copy_to():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        s = SourceSelection()
        copied = s.copy_to(pjoin(d, 'ws'), pjoin(d, 'copy'))
        assert copied == s.select(pjoin(d, 'copy'))
        assert not os.path.exists(pjoin(d, 'copy', 'README.md'))
        assert cat(pjoin(d, 'copy', 'crates', 'typst-cli', 'src', 'main.rs')) == \
            'fn main() { typst::run(); }\n'

def test_copy_to_refreshes_mtime():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        src = pjoin(d, 'ws', 'crates', 'typst-cli', 'build.rs')
        os.chmod(src, 0o755)
        an_hour_ago = time.time() - 3600
        os.utime(src, (an_hour_ago, an_hour_ago))
        SourceSelection().copy_to(pjoin(d, 'ws'), pjoin(d, 'copy'))
        dest = pjoin(d, 'copy', 'crates', 'typst-cli', 'build.rs')
        assert os.stat(dest).st_mtime > an_hour_ago + 1800
        assert os.access(dest, os.X_OK)
        assert cat(dest) == cat(src)

def test_select_follows_symlinked_directory():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        dump(pjoin(d, 'vendor', 'comemo', 'src', 'lib.rs'), 'pub fn memoize() {}\n')
        os.symlink(pjoin(d, 'vendor', 'comemo'), pjoin(d, 'ws', 'crates', 'comemo'))
        s = SourceSelection()
        files = s.select(pjoin(d, 'ws'))
        assert 'crates/comemo/src/lib.rs' in files
        before = s.digest(pjoin(d, 'ws'))
        dump(pjoin(d, 'vendor', 'comemo', 'src', 'lib.rs'), 'pub fn memoize() { todo!() }\n')
        assert before != s.digest(pjoin(d, 'ws'))
        s.copy_to(pjoin(d, 'ws'), pjoin(d, 'copy'))
        assert not os.path.islink(pjoin(d, 'copy', 'crates', 'comemo'))
        assert cat(pjoin(d, 'copy', 'crates', 'comemo', 'src', 'lib.rs')) == \
            'pub fn memoize() { todo!() }\n'

def test_select_skips_symlink_cycles():
    with temp_dir() as d:
        make_workspace(d)
        os.symlink(pjoin(d, 'crates'), pjoin(d, 'crates', 'typst', 'src', 'loop'))
        os.symlink(pjoin(d, 'crates', 'typst'), pjoin(d, 'crates', 'typst', 'self'))
        files = SourceSelection().select(d)
        assert 'crates/typst/src/lib.rs' in files
        assert not [f for f in files if '/loop' in f or '/self' in f]

#
# Dependency skeleton
#

def test_skeleton_contents():
    with temp_dir() as d:
        make_workspace(d)
        skeleton = SourceSelection().dependency_skeleton(d)
        assert sorted(skeleton.manifests) == ['Cargo.lock', 'Cargo.toml',
                                              'crates/typst-cli/Cargo.toml',
                                              'crates/typst/Cargo.toml']
        assert sorted(skeleton.stubs) == ['crates/typst-cli/build.rs',
                                          'crates/typst-cli/src/main.rs',
                                          'crates/typst/src/lib.rs',
                                          'tests/suite.rs']

def test_skeleton_materialize():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        skeleton = SourceSelection().dependency_skeleton(pjoin(d, 'ws'))
        skeleton.materialize(pjoin(d, 'skel'))
        assert cat(pjoin(d, 'skel', 'Cargo.lock')) == cat(pjoin(d, 'ws', 'Cargo.lock'))
        assert cat(pjoin(d, 'skel', 'crates', 'typst-cli', 'src', 'main.rs')) == STUB_SOURCE
        # modules that are not target roots are left out
        assert not os.path.exists(pjoin(d, 'skel', 'crates', 'typst-cli', 'src', 'args.rs'))
        assert not os.path.exists(pjoin(d, 'skel', 'assets'))

def test_skeleton_digest_ignores_program_source():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection()
        before = s.dependency_skeleton(d).digest()
        dump(pjoin(d, 'crates', 'typst-cli', 'src', 'main.rs'), 'fn main() { println!("hi"); }\n')
        dump(pjoin(d, 'crates', 'typst-cli', 'src', 'new_module.rs'), 'pub fn f() {}\n')
        dump(pjoin(d, 'README.md'), 'changed\n')
        assert before == s.dependency_skeleton(d).digest()

def test_skeleton_digest_follows_lockfile():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection()
        before = s.dependency_skeleton(d).digest()
        dump(pjoin(d, 'Cargo.lock'), 'version = 3\n\n[[package]]\nname = "comemo"\nversion = "0.4.1"\n')
        assert before != s.dependency_skeleton(d).digest()

def test_skeleton_digest_follows_new_target():
    with temp_dir() as d:
        make_workspace(d)
        s = SourceSelection()
        before = s.dependency_skeleton(d).digest()
        dump(pjoin(d, 'crates', 'typst-cli', 'src', 'bin', 'helper.rs'), 'fn main() {}\n')
        assert before != s.dependency_skeleton(d).digest()

def test_skeleton_declared_target_roots():
    with temp_dir() as d:
        make_workspace(pjoin(d, 'ws'))
        dump(pjoin(d, 'ws', 'crates', 'typst-pdf', 'Cargo.toml'), '''\
            [package]
            name = "typst-pdf"
            build = "gen/build.rs"

            [lib]
            path = "src/custom.rs"

            [[bin]]
            name = "pdf-tool"
            path = "tools/run.rs"

            [[example]]
            name = "outside"
            path = "../../../outside.rs"
            ''')
        dump(pjoin(d, 'ws', 'crates', 'typst-pdf', 'src', 'custom.rs'), 'pub fn pdf() {}\n')
        dump(pjoin(d, 'ws', 'crates', 'typst-pdf', 'tools', 'run.rs'), 'fn main() {}\n')
        s = SourceSelection()
        before = s.dependency_skeleton(pjoin(d, 'ws')).digest()

        skeleton = s.dependency_skeleton(pjoin(d, 'ws'))
        for stub in ['crates/typst-pdf/gen/build.rs', 'crates/typst-pdf/src/custom.rs',
                     'crates/typst-pdf/tools/run.rs']:
            assert stub in skeleton.stubs, stub
        assert not [f for f in skeleton.stubs if 'outside' in f]

        skeleton.materialize(pjoin(d, 'skel'))
        for parts in [('gen', 'build.rs'), ('src', 'custom.rs'), ('tools', 'run.rs')]:
            assert cat(pjoin(d, 'skel', 'crates', 'typst-pdf', *parts)) == STUB_SOURCE
        assert not os.path.exists(pjoin(d, 'outside.rs'))

        # editing the program source behind a declared root leaves the digest alone
        dump(pjoin(d, 'ws', 'crates', 'typst-pdf', 'src', 'custom.rs'), 'pub fn pdf2() {}\n')
        assert before == s.dependency_skeleton(pjoin(d, 'ws')).digest()

def test_declared_target_roots_invalid_manifest():
    with temp_dir() as d:
        dump(pjoin(d, 'crates', 'broken', 'Cargo.toml'), '[package\n')
        with assert_raises(ManifestParseError):
            declared_target_roots(d, 'crates/broken')
