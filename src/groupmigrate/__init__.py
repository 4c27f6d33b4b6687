"""Export directory security groups and provision mail-enabled equivalents."""

__version__ = "0.1.0"
