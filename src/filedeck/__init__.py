"""filedeck - file manager core over folders and ZIP archives."""

__version__ = "0.1.0"
