"""Apply, roll back, inspect or create schema migrations.

Usage:
    python scripts/migrate.py                     upgrade to head
    python scripts/migrate.py downgrade <rev>     roll back to a revision
    python scripts/migrate.py current             show the applied revision
    python scripts/migrate.py create <message>    autogenerate a revision
"""

import sys
from collections.abc import Callable

from alembic import command
from alembic.config import Config

ALEMBIC_INI = "alembic.ini"


def _run(label: str, action: Callable[[Config], object]) -> None:
    print(f"{label}...")
    try:
        action(Config(ALEMBIC_INI))
    except Exception as e:
        print(f"✗ {label} failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"✓ {label} done")


def main(argv: list[str]) -> None:
    if not argv:
        _run("Upgrading schema to head", lambda cfg: command.upgrade(cfg, "head"))
    elif argv[0] == "downgrade" and len(argv) == 2:
        _run(f"Downgrading schema to {argv[1]}", lambda cfg: command.downgrade(cfg, argv[1]))
    elif argv[0] == "current" and len(argv) == 1:
        _run("Reading applied revision", lambda cfg: command.current(cfg, verbose=True))
    elif argv[0] == "create" and len(argv) > 1:
        message = " ".join(argv[1:])
        _run(
            f"Creating revision '{message}'",
            lambda cfg: command.revision(cfg, message=message, autogenerate=True),
        )
    else:
        print(__doc__)
        sys.exit(2)


if __name__ == "__main__":
    main(sys.argv[1:])
