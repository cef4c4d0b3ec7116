"""User account service: registration, login and rotating refresh-token sessions."""

__version__ = "1.0.0"
