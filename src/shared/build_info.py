"""Build metadata exposed at runtime.

APP_VERSION is set via environment variable in CI; otherwise the installed
distribution's version is reported.
"""

import os
from importlib.metadata import PackageNotFoundError, version


def _installed_version() -> str:
    try:
        return version("chessbreak")
    except PackageNotFoundError:
        return "dev"


APP_VERSION: str = os.environ.get("APP_VERSION") or _installed_version()
