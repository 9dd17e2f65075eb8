"""
Schema migrations without an alembic.ini.

The API calls ``main(["upgrade", "head"])`` at startup; operators can run the
same commands by hand:

    python -m dental_crm.db.run_migrations upgrade head
    python -m dental_crm.db.run_migrations downgrade -1
    python -m dental_crm.db.run_migrations current
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Sequence

from alembic import command
from alembic.config import Config

from dental_crm.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic callable, default positional args)
COMMANDS: Dict[str, tuple[Callable[..., object], Sequence[str]]] = {
    "upgrade": (command.upgrade, ("head",)),
    "downgrade": (command.downgrade, ("-1",)),
    "current": (command.current, ()),
    "history": (command.history, ()),
    "heads": (command.heads, ()),
    "stamp": (command.stamp, ("head",)),
}


def build_config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # only read by offline runs; env.py builds the async engine itself
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Dispatch an Alembic command (upgrade, downgrade, current, history, heads, stamp)."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in COMMANDS:
        supported = ", ".join(sorted(COMMANDS))
        print(f"Usage: run_migrations <{supported}> [revision]")
        sys.exit(2)

    name, rest = args[0], args[1:]
    func, defaults = COMMANDS[name]
    logger.info("alembic %s %s", name, " ".join(rest or defaults))
    func(build_config(), *(rest or defaults))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
