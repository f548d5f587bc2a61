"""Tessera: agent-native local knowledge base with convention-based project discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tessera")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from tessera.core import Item, TesseraDB

__all__ = ["Item", "TesseraDB", "__version__"]
