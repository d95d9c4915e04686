"""Schema-convention engine for chuck-stack style business records."""

__version__ = "0.1.0"
