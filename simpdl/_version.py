"""
Defines the application's version string and project location.

This is the single source of truth for the application's version number.
It is used in the window title, the About text, and for release checks.
`__repository__` is filled in by the release build; when it is empty the
startup release check is skipped.
"""

__version__ = "0.4.0"
__repository__ = ""
