#!/usr/bin/env python3
"""
Create the payroll kernel tables for the configured database.

Usage:
    python scripts/init_db.py [--config settings.yaml]

The database URL comes from payroll_config.get_settings(): the packaged
defaults, the --config file (or $PAYROLL_CONFIG_FILE), then
$PAYROLL_DATABASE_URL.  Existing tables are left untouched.
"""

import argparse
import os
import sys

# Allow importing the project packages when run as a script.
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _root not in sys.path:
    sys.path.insert(0, _root)

from payroll_config import get_settings  # noqa: E402
from payroll_config.bridges import init_kernel  # noqa: E402
from payroll_kernel.db.engine import create_tables, get_engine  # noqa: E402
from payroll_kernel.logging_config import get_logger  # noqa: E402

logger = get_logger("scripts.init_db")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create payroll kernel tables")
    parser.add_argument(
        "--config",
        default=None,
        help="Settings YAML layered over the packaged defaults",
    )
    args = parser.parse_args(argv)

    settings = get_settings(args.config)
    init_kernel(settings)
    create_tables()

    engine = get_engine()
    logger.info("tables_created", extra={"dialect": engine.dialect.name})
    print(f"Tables ready on {engine.url.render_as_string(hide_password=True)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
