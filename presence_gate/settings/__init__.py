"""Default settings entry point used by ``manage.py`` and the test suite."""

from .base import *  # noqa: F401,F403
