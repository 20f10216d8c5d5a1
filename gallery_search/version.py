"""
Version information for the gallery-search package.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gallery-search")
except PackageNotFoundError:
    # Package is not installed
    __version__ = "0.0.0+unknown"
