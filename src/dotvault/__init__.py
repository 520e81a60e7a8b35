"""DotVault: backup and restore for configuration files."""

__version__ = "0.1.0"
