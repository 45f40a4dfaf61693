r"""
ANSI Colors
===========

The log formats may contain ANSI color sequences; they are stripped
when the output is not a terminal.

EXAMPLES::

    >>> from cratedist.util.ansi_color import monochrome
    >>> monochrome('\x1b[31;01mhello\x1b[39;49;00m')
    'hello'
"""

import os
import sys
import re


def want_color():
    """
    Whether colors should be used

    Returns:
    --------

    Boolean. Whether it is desirable to use ansi colors.
    """
    if 'NOCOLOR' in os.environ or 'NO_COLOR' in os.environ:
        return False
    if os.environ.get('TERM', None) in ['dumb', 'emacs']:
        return False
    try:
        return sys.stdout.isatty() and sys.stderr.isatty()
    except AttributeError:
        return False


_ANSI_COLOR_RE = re.compile(r'\x1b\[[0-9;]*m')

def monochrome(string):
    """
    Strip ANSI color sequences from the input
    """
    return re.sub(_ANSI_COLOR_RE, '', string)
