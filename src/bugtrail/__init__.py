"""bugtrail: a small-team defect tracker with a JSON API and CLI."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("bugtrail")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from bugtrail.core import Bug, BugDB

__all__ = ["Bug", "BugDB", "__version__"]
