#!/usr/bin/env python3
"""
Create the stock ledger schema and bootstrap the store: the settings row
(seeded from the store YAML) and every sequence counter.

Safe to re-run: existing tables, settings and counters are left alone
unless --drop is given.

Usage:
  python3 scripts/init_store.py [--config PATH] [--drop]

Environment:
  STOCK_LEDGER_CONFIG  config file used when --config is omitted
  DATABASE_URL         overrides database.url from the config file
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create tables and bootstrap the stock ledger store")
    p.add_argument(
        "--config",
        default=None,
        help="Store YAML file (default: STOCK_LEDGER_CONFIG, or the packaged defaults/store.yaml)",
    )
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop every ledger table before recreating the schema. Destroys all data.",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from stock_config import get_active_config
    from stock_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
    )
    from stock_kernel.logging_config import configure_logging
    from stock_services.bootstrap import bootstrap_store

    config = get_active_config(args.config)
    configure_logging(level=config.log_level)

    print()
    print(f"  [1/3] Connecting ({config.name} v{config.version})...")
    try:
        init_engine_from_url(config.database_url, echo=config.echo_sql)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    if args.drop:
        print("  [2/3] Dropping and recreating schema...")
        drop_tables()
    else:
        print("  [2/3] Creating schema...")
    create_tables()

    print("  [3/3] Bootstrapping settings and sequence counters...")
    session = get_session()
    try:
        result = bootstrap_store(session, config)
    finally:
        session.close()

    print()
    print(f"  Settings row created: {result.settings_created}")
    print(f"  Counters created:     {', '.join(result.counters_created) or '(none)'}")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
