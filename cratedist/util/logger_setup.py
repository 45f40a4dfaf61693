"""
Utilities to setup the Python logger

EXAMPLES:

The root logger is used by default::

    >>> configure_logging('INFO')
    [INFO] configured logging: INFO
    >>> root = getLogger()
    >>> root.debug('debug is not shown when configured with INFO')
    >>> root.warning('this is a warning')
    [WARNING] this is a warning

The "package" logger is used to log progress on builds, and it
includes the name of what is being built. It is also used to log the
toolchain output::

    >>> pkg = getLogger('package', 'typst-deps')
    >>> pkg.logger.name
    'package'
    >>> pkg.info('info is the lowest level that is shown with INFO')
    [typst-deps] info is the lowest level that is shown with INFO
    >>> pkg.error('error and critical include the level name')
    [typst-deps|ERROR] error and critical include the level name

Redirection to file can be done with the :class:`log_to_file`
context. It ignores all log levels, that is, the log file will always
contain DEBUG and higher.

The null logger does not print anything and is used by the tests.
"""

import logging
import logging.config
import os

import yaml

from .ansi_color import want_color, monochrome


_ERROR_OCCURRED = False

def has_error_occurred():
    """
    Return whether an error was logged previously.
    """
    return _ERROR_OCCURRED


class CrateDistFormatter(logging.Formatter):
    """
    Log formatter with a separate format per level
    """
    def __init__(self, fmt, debug=None, info=None, warning=None, error=None, critical=None):
        m = monochrome if not want_color() else lambda x: x
        logging.Formatter.__init__(self, m(fmt))
        self._custom_fmt = f = dict()
        if debug:    f[logging.DEBUG]    = logging.Formatter(m(debug))
        if info:     f[logging.INFO]     = logging.Formatter(m(info))
        if warning:  f[logging.WARNING]  = logging.Formatter(m(warning))
        if error:    f[logging.ERROR]    = logging.Formatter(m(error))
        if critical: f[logging.CRITICAL] = logging.Formatter(m(critical))

    def format(self, record):
        if record.levelno >= logging.ERROR:
            global _ERROR_OCCURRED
            _ERROR_OCCURRED = True
        try:
            fmt = self._custom_fmt[record.levelno]
        except KeyError:
            return logging.Formatter.format(self, record)
        return fmt.format(record)


_LEVELS = ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG']

def configure_logging(config):
    """
    Configure the root logger

    You are supposed to call this only once, at the beginning of
    your program.

    Arguments:
    ----------

    config : string or ``None``.
       One of
       * the Python log level names ``'CRITICAL'``,
         ``'ERROR'``, ``'WARNING'``, ``'INFO'``, ``'DEBUG'``.
       * the name of a logging configuration YAML file. See
         ``logging_config.yaml`` for which loggers are required.
       * ``None``. In this case, a suitable default is set up.
    """
    default = os.path.join(os.path.dirname(__file__), 'logging_config.yaml')
    if config is None:
        _configure_logging_from_yaml(default)
    elif config.upper() in _LEVELS:
        _configure_logging_from_yaml(default)
        set_log_level(config)
    else:
        _configure_logging_from_yaml(config)
    root = logging.getLogger()
    root.info('configured logging: %s', config)


def _configure_logging_from_yaml(filename):
    with open(filename, 'r') as f:
        config_dict = yaml.safe_load(f)
    try:
        logging.config.dictConfig(config_dict)
    except Exception as err:
        # the CLI reports exceptions through the logger, which is not set up yet
        print('Configuring the logger encountered an exception: ' + str(err))
        raise


def set_log_level(level):
    """
    Set which log messages are displayed.

    Arguments:
    ----------

    level : string or int
        The desired log level as defined by the Python logging module
    """
    if isinstance(level, str):
        try:
            level = getattr(logging, _LEVELS[_LEVELS.index(level.upper())])
        except ValueError:
            raise ValueError('level must be integer or a valid log level string')
    logging.getLogger().setLevel(level=level)
    pkg_logger = logging.getLogger('package')
    for h in pkg_logger.handlers:
        if h.name == 'package_handler':
            h.setLevel(level)


def getLogger(name=None, pkg=None):
    """
    Get Logger

    This function extends ``logging.getLogger`` with a shortcut to get
    a package logger.

    Arguments:
    ----------

    name : str or ``None``
        The logger name. ``None`` is the root logger, ``'package'``
        the logger for builds and ``'null_logger'`` the silent logger.

    pkg : str (optional)
        Required only for the ``'package'`` logger. The name of what
        is being built.
    """
    logger = logging.getLogger(name)
    if name == 'package':
        return logging.LoggerAdapter(logger, {'pkg': pkg})
    else:
        return logger


class log_to_file(object):
    """
    Context manager to log to file

    This can be used to add file output temporarily to any logger. Any
    log events of level ``DEBUG`` and higher are logged to the file.
    """
    def __init__(self, name, filename):
        self.filename = filename
        self.logger = logging.getLogger(name)
        self.handler = h = logging.FileHandler(filename)
        h.setLevel(logging.DEBUG)
        h.setFormatter(self.get_formatter())

    def get_formatter(self):
        return logging.Formatter(
            fmt='%(asctime)s - %(levelname)s: [%(name)s:%(module)s] %(message)s',
            datefmt='%Y/%m/%d %H:%M:%S')

    def __enter__(self):
        self.old_level = self.logger.level
        threshold = self.logger.getEffectiveLevel()
        # other handlers keep the configured threshold
        self.old_handler_levels = [(h, h.level) for h in self.logger.handlers]
        for h, level in self.old_handler_levels:
            if level == logging.NOTSET:
                h.setLevel(threshold)
        self.logger.addHandler(self.handler)
        self.logger.setLevel(logging.DEBUG)

    def __exit__(self, exc_type, exc_value, traceback):
        self.handler.flush()
        self.handler.close()
        self.logger.removeHandler(self.handler)
        self.logger.setLevel(self.old_level)
        for h, level in self.old_handler_levels:
            h.setLevel(level)
