"""sessionvault - server-side sessions in a relational table.

Session state is stored as encrypted rows, bound to clients by an encrypted
cookie carrying only the row id, and expired rows are reclaimed by a
background sweeper.
"""

__version__ = "0.1.0"
__author__ = "sessionvault Contributors"

from sessionvault.config import Settings, get_settings, load_settings_from_file, set_settings

__all__ = [
    "Settings",
    "__version__",
    "get_settings",
    "load_settings_from_file",
    "set_settings",
]
