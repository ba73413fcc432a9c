#!/usr/bin/env python3
"""
Apply pending Flow Pet database migrations.

Usage: python migrate.py [revision]   (defaults to "head")
"""

from dotenv import load_dotenv
load_dotenv()

import os
import sys

from alembic import command
from alembic.config import Config
from alembic.util import CommandError

HERE = os.path.dirname(os.path.abspath(__file__))


def main(revision: str = "head") -> int:
    config = Config(os.path.join(HERE, "alembic.ini"))
    config.set_main_option("script_location", os.path.join(HERE, "migrations"))

    print(f"Upgrading Flow Pet database to {revision}...")
    try:
        command.upgrade(config, revision)
    except CommandError as e:
        print(f"Migration failed: {e}")
        return 1
    print("Migrations completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main(*sys.argv[1:2]))
