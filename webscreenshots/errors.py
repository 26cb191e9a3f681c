from typing import List


class WebscreenshotsError(Exception):
    """Base class for errors raised by webscreenshots."""


class ConfigError(WebscreenshotsError, ValueError):
    """The configuration could not be resolved."""


class ConfigFileError(ConfigError):
    """A config file was requested or found but could not be read or parsed."""


class ConfigValidationError(ConfigError):
    """
    The merged configuration broke one or more validation rules.
    Every violation is kept in 'violations' as "<path> <message>".
    """

    def __init__(self, violations: List[str]) -> None:
        self.violations = list(violations)
        message = "Configuration validation error(s):\n • " + "\n • ".join(
            self.violations
        )
        super().__init__(message)
