"""Exception types raised by jogarm."""


class JogArmError(Exception):
    """Base class for jogarm errors."""


class ConfigError(JogArmError, ValueError):
    """Invalid, missing or inconsistent jogging parameters."""


class ModelError(JogArmError):
    """The robot model does not provide a configured group, frame or joint."""
