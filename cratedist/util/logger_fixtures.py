"""
Log Capture for Unit Tests
==========================

EXAMPLES::

    >>> from cratedist.util.logger_fixtures import log_capture
    >>> with log_capture() as log:
    ...    log.warning('dependency cache miss')
    ...    log.error('cargo failed')
    >>> log.lines
    ('WARNING:dependency cache miss', 'ERROR:cargo failed')
    >>> log.assertLogged('^ERROR.*cargo')
"""

import re
import logging
import logging.handlers


class TestHandler(logging.handlers.BufferingHandler):
    """
    Log handler that buffers indefinitely.
    """

    def __init__(self):
        logging.handlers.BufferingHandler.__init__(self, 0)

    def shouldFlush(self, *args):
        return False


class TestLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter giving access to what was logged. Create it through
    :class:`log_capture`.
    """

    def __init__(self, logger, test_handler):
        self._handler = test_handler
        logging.LoggerAdapter.__init__(self, logger, {'pkg': 'test'})

    def _format_buffered_log(self):
        fmt = self._handler.formatter
        return tuple(fmt.format(record) for record in self._handler.buffer)

    def _buffered_messages(self):
        return tuple(record.getMessage() for record in self._handler.buffer)

    def _save(self):
        self._lines = self._format_buffered_log()
        self._messages = self._buffered_messages()

    @property
    def lines(self):
        """
        The log lines (``LEVEL:message``) thus far; after the context
        exits, the entire log.
        """
        try:
            return self._lines
        except AttributeError:
            return self._format_buffered_log()

    @property
    def messages(self):
        try:
            return self._messages
        except AttributeError:
            return self._buffered_messages()

    def assertLogged(self, search_pattern):
        """
        Raise ``AssertionError`` unless the regex `search_pattern` is
        found in at least one log line.
        """
        assert any(re.search(search_pattern, line) for line in self.lines), \
            'no such log message'


class log_capture(object):
    """
    Context manager to log to a memory buffer
    """

    def __init__(self, name=None):
        self.logger = logging.getLogger(name)
        self.handler = h = TestHandler()
        h.setLevel(logging.DEBUG)
        h.setFormatter(logging.Formatter('%(levelname)s:%(message)s'))

    def __enter__(self):
        self.orig_handlers = self.logger.handlers
        self.orig_propagate = self.logger.propagate
        self.logger.handlers = [self.handler]
        self.logger.propagate = False
        self.level = self.logger.level
        self.logger.setLevel(logging.DEBUG)
        self.test = TestLoggerAdapter(self.logger, self.handler)
        return self.test

    def __exit__(self, exc_type, exc_value, traceback):
        self.test._save()
        self.logger.handlers = self.orig_handlers
        self.logger.propagate = self.orig_propagate
        self.logger.level = self.level
