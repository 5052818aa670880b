"""Top-level package for chatkeeper."""

from . import config, custody, files, hashing, keeper, publisher, storage

__version__ = "0.1.0"

__all__ = ["config", "custody", "files", "hashing", "keeper", "publisher", "storage"]
