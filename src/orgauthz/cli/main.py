"""``orgauthz`` console script."""

from __future__ import annotations

from collections.abc import Sequence

from .app import app
from .core.runtime import EXIT_FAILURE, EXIT_SUCCESS

__all__ = ["EXIT_FAILURE", "EXIT_SUCCESS", "main"]


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return its exit code instead of exiting."""

    try:
        app(args=list(argv) if argv is not None else None, prog_name="orgauthz")
    except SystemExit as exc:
        code = exc.code
        if code is None:
            return EXIT_SUCCESS
        return code if isinstance(code, int) else EXIT_FAILURE
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
