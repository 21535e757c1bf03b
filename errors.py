"""
errors.py
Exception types raised by the data layer and turned into error dicts by
analysis.py. Numeric and schema problems never raise; they degrade to None.
"""


class StatsBotError(Exception):
    """Base class. `kind` is the snake_case name surfaced to the user layer."""
    kind = "error"


class ConfigurationMissing(StatsBotError):
    kind = "configuration_missing"


class FetchFailed(StatsBotError):
    kind = "fetch_failed"


class Unauthorized(StatsBotError):
    kind = "unauthorized"
