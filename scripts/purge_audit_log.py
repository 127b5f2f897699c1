#!/usr/bin/env python3
"""
Delete audit entries older than the retention period.

Usage:
    python scripts/purge_audit_log.py [--config settings.yaml] [--days N]

Without --days the retention period is ``audit.retention_days`` from
settings.  Entries with a timestamp strictly before now - N days are
removed in one transaction.
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
from payroll_kernel.db.engine import session_scope  # noqa: E402
from payroll_kernel.services.audit_logger import AuditLogger  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Purge expired audit entries")
    parser.add_argument(
        "--config",
        default=None,
        help="Settings YAML layered over the packaged defaults",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention in days (default: audit.retention_days)",
    )
    args = parser.parse_args(argv)

    settings = get_settings(args.config)
    if not settings.audit.enabled:
        print("Audit trail disabled; nothing to purge")
        return 0

    days = settings.audit.retention_days if args.days is None else args.days
    if days < 0:
        parser.error("--days must be >= 0")

    init_kernel(settings)
    with session_scope() as session:
        audit = AuditLogger(session, auto_commit=False)
        audit.ensure_available()
        deleted = audit.purge_expired(days)

    print(f"Purged {deleted} audit entries older than {days} days")
    return 0


if __name__ == "__main__":
    sys.exit(main())
