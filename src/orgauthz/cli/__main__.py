"""Module execution entrypoint for ``python -m orgauthz.cli``."""

from orgauthz.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
