"""PassVault: a local, password-protected secrets vault with a terminal UI."""

__version__ = "1.0.0"
