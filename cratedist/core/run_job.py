"""
:mod:`cratedist.core.run_job` --- Job execution
===============================================

Runs the toolchain commands of a build in a controlled environment.

A job is a list of commands, each an argument list. Arguments may
reference environment variables as ``$VAR`` or ``${VAR}``; they are
substituted from the job environment before the command is run (no
shell is involved). ``\\$`` is a literal dollar sign.

The environment of the commands is *not* the environment of the
calling process: it is built from the job's own variables plus the
few host variables in :data:`PASSTHROUGH_ENV` that the toolchain needs
to locate itself and its caches.

Standard output and error of every command are merged and sent line
by line to the logger at DEBUG level (which ends up in the build log);
they are also returned, so that a failure can be reported with the
toolchain output unmodified. There is no stdin. A failing command
aborts the job; nothing is retried.
"""

import os
import subprocess
from string import Template

PASSTHROUGH_ENV = ('PATH', 'HOME', 'USER', 'TMPDIR', 'LANG', 'LC_ALL', 'TERM',
                   'CARGO_HOME', 'RUSTUP_HOME', 'RUSTUP_TOOLCHAIN',
                   'SSL_CERT_FILE', 'NIX_SSL_CERT_FILE', 'SYSTEMROOT')


class InvalidJobSpecError(ValueError):
    pass


class JobFailedError(RuntimeError):
    def __init__(self, returncode, cmd, output):
        RuntimeError.__init__(self, 'command %r failed (code=%s)' % (cmd, returncode))
        self.returncode = returncode
        self.cmd = cmd
        self.output = output


def substitute(x, env):
    """
    Substitute environment variables into a string.

    Raises KeyError if a referenced variable is not present in env
    (``$$`` always raises KeyError)
    """
    if '$$' in x:
        # it's the escape character of string.Template, hence the special case
        raise KeyError('$$ is not allowed (no variable can be named $): %s' % x)
    x = x.replace(r'\$', '$$')
    return Template(x).substitute(env)


def job_environment(env, host_env=None):
    """Returns the environment for running a job: the passthrough host
    variables, overridden by `env`
    """
    if host_env is None:
        host_env = os.environ
    result = dict((key, host_env[key]) for key in PASSTHROUGH_ENV if key in host_env)
    result.update(env)
    return result


def run_job(logger, commands, env, cwd, host_env=None):
    """Runs `commands` one after the other.

    Parameters
    ----------

    logger : Logger

    commands : list of list of str
        The commands to run, with ``$VAR`` references.

    env : dict
        Job environment variables; see :func:`job_environment`.

    cwd : str
        Working directory of every command.

    Returns
    -------

    output : str
        Combined output of all commands.
    """
    if not isinstance(commands, (list, tuple)):
        raise InvalidJobSpecError('commands must be a list of argument lists')
    full_env = job_environment(env, host_env)
    outputs = []
    for cmd in commands:
        if not isinstance(cmd, (list, tuple)) or len(cmd) == 0:
            raise InvalidJobSpecError('invalid command: %r' % (cmd,))
        try:
            args = [substitute(arg, full_env) for arg in cmd]
        except KeyError as e:
            raise InvalidJobSpecError('command %r references undefined variable %s' % (cmd, e))
        outputs.append(run_command(logger, args, full_env, cwd))
    return ''.join(outputs)


def run_command(logger, args, env, cwd):
    logger.debug('running %r' % args)
    logger.debug('cwd: ' + cwd)
    try:
        proc = subprocess.Popen(args, cwd=cwd, env=env,
                                stdin=subprocess.DEVNULL,
                                stdout=subprocess.PIPE,
                                stderr=subprocess.STDOUT)
    except FileNotFoundError:
        # fix error message up a bit since the situation is so confusing
        if '/' in args[0]:
            msg = 'command "%s" not found (cwd: %s)' % (args[0], cwd)
        else:
            msg = 'command "%s" not found in $PATH (cwd: %s)' % (args[0], cwd)
        logger.error(msg)
        raise JobFailedError(127, args, msg + '\n')

    lines = []
    with proc.stdout:
        for raw_line in proc.stdout:
            line = raw_line.decode('UTF-8', 'replace')
            lines.append(line)
            logger.debug(line.rstrip('\n'))
    retcode = proc.wait()
    output = ''.join(lines)
    if retcode != 0:
        logger.error('command failed (code=%d); raising' % retcode)
        raise JobFailedError(retcode, args, output)
    return output
