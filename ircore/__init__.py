"""ircore: IRC client core with DCC file transfers and an ident responder."""

from .constants import CLIENT_NAME, CLIENT_VERSION

__version__ = CLIENT_VERSION

__all__ = ["CLIENT_NAME", "CLIENT_VERSION", "__version__"]
