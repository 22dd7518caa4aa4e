"""Custom exceptions for configuration management."""


class ConfigError(Exception):
    """Raised when configuration data cannot be loaded or fails validation.

    This is fatal at startup: commands refuse to run with an invalid
    configuration rather than guessing at defaults.
    """


ConfigurationError = ConfigError
