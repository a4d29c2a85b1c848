"""Package entry point.

Preferred invocation is via the installed console script:

    buildgate ...

For convenience we also support:

    python -m buildgate ...
"""

from __future__ import annotations

from .cli import app


def main() -> None:
    """Entry point used by `python -m buildgate`."""

    app()


if __name__ == "__main__":
    main()
