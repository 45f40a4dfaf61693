import os
import errno
import shutil
import stat
import time
import gzip
from os.path import join as pjoin


def silent_makedirs(path):
    """like os.makedirs, but does not raise error in the event that the directory already exists"""
    try:
        os.makedirs(path)
    except OSError:
        if not os.path.isdir(path):
            raise


def silent_unlink(path):
    """like os.unlink but does not raise error if the file does not exist"""
    try:
        os.unlink(path)
    except OSError:
        if os.path.exists(path) or os.path.islink(path):
            raise


def robust_rmtree(path, logger=None, max_retries=6):
    """Robustly tries to delete paths.

    Retries several times (with increasing delays) if an OSError
    occurs.  If the final attempt fails, the Exception is propagated
    to the caller.
    """
    dt = 1
    for i in range(max_retries):
        try:
            shutil.rmtree(path)
            return
        except FileNotFoundError:
            return
        except OSError:
            if logger:
                logger.info('Unable to remove path: %s' % path)
                logger.info('Retrying after %d seconds' % dt)
            time.sleep(dt)
            dt *= 2

    # Final attempt, pass any Exceptions up to caller.
    shutil.rmtree(path)


def gzip_compress(source_filename, dest_filename):
    chunk_size = 16 * 1024
    with open(source_filename, 'rb') as src:
        with gzip.open(dest_filename, 'wb') as dst:
            while True:
                chunk = src.read(chunk_size)
                if not chunk:
                    break
                dst.write(chunk)


def atomic_symlink(source, dest):
    """Overwrites a destination symlink atomically without raising error
    if target exists (by first creating link to `source`, then renaming it to `dest`)
    """
    i = 0
    while True:
        try:
            templink = dest + '-%d' % i
            os.symlink(source, templink)
        except OSError as e:
            if e.errno == errno.EEXIST:
                i += 1
            else:
                raise
        else:
            break
    try:
        os.rename(templink, dest)
    except BaseException:
        os.unlink(templink)
        raise


def write_protect(path):
    if not os.path.islink(path):
        mode = os.stat(path).st_mode
        os.chmod(path, mode & ~0o222)


def rmtree_write_protected(rootpath):
    """
    Like shutil.rmtree, but removes files/directories that are write-protected.
    """
    for dirpath, dirnames, filenames in os.walk(rootpath, followlinks=False, topdown=False):
        os.chmod(dirpath, 0o777)
        for fname in filenames:
            qname = pjoin(dirpath, fname)
            if not os.path.islink(qname):
                os.chmod(qname, 0o777)
            os.unlink(qname)
        for fname in dirnames:
            qname = pjoin(dirpath, fname)
            if os.path.islink(qname):
                os.unlink(qname)
            else:
                os.chmod(qname, 0o777)
                os.rmdir(qname)
    os.rmdir(rootpath)


def copy_tree_into(src, dst):
    """Copies the contents of directory `src` into `dst`, merging with
    whatever is already present in `dst`. Symlinks are copied as symlinks.
    """
    shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
    make_tree_writable(dst)


def make_tree_writable(rootpath):
    """Adds the owner write bit on everything below `rootpath`; copies out of
    the build store inherit its write protection otherwise
    """
    for dirpath, dirnames, filenames in os.walk(rootpath, followlinks=False):
        os.chmod(dirpath, os.stat(dirpath).st_mode | stat.S_IWUSR)
        for fname in filenames:
            qname = pjoin(dirpath, fname)
            if not os.path.islink(qname):
                os.chmod(qname, os.stat(qname).st_mode | stat.S_IWUSR)


def install_file(source, dest_dir, dest_name=None, mode=0o644):
    """Copies `source` into `dest_dir` (created if needed) and returns the new path"""
    silent_makedirs(dest_dir)
    target = pjoin(dest_dir, dest_name or os.path.basename(source))
    shutil.copyfile(source, target)
    os.chmod(target, mode)
    return target


def is_executable(path):
    return os.path.isfile(path) and os.access(path, os.X_OK)


def realpath_to_symlink(filename):
    """Acts like ``os.path.realpath`` on the parent directory of the given file

    This function just follows symlinks in parent directories, but not the link
    we are pointing to.
    """
    parent_dir, basename = os.path.split(filename)
    result = pjoin(os.path.realpath(parent_dir), basename)
    return result
