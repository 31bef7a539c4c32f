"""Platform specific locations and TLS defaults."""

from __future__ import annotations

import os
import ssl
import sys


def _is_windows() -> bool:
    return sys.platform == "win32"


def config_dir() -> str:
    """The directory holding the client's configuration."""
    if _is_windows():
        local = os.environ.get("LOCALAPPDATA")
        if not local:
            raise OSError("could not locate the local application data folder")
        return os.path.join(local, "EdgeDB", "config")

    directory = os.environ.get("XDG_CONFIG_HOME", ".")
    if not os.path.isabs(directory):
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("could not determine the home directory")
        directory = os.path.join(home, ".config")
    return os.path.join(directory, "edgedb")


def device(path: str | os.PathLike[str]) -> int:
    """The device the file at ``path`` lives on; always 0 on Windows."""
    if _is_windows():
        return 0
    return os.stat(path).st_dev


def system_ssl_context() -> ssl.SSLContext:
    """A TLS context that trusts the system's certificate authorities."""
    return ssl.create_default_context()