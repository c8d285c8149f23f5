"""Command line entry point: ``filauth run``"""
import argparse
import sys
from typing import List, Optional

import uvicorn

from filauth.config import VERSION, Settings


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filauth", description="Filecoin auth service")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Start the HTTP service")
    run_parser.add_argument("--host", help="Listen host (HOST)")
    run_parser.add_argument("--port", type=int, help="Listen port (PORT)")
    run_parser.add_argument("--repo", help="Repo directory (REPO_PATH)")
    run_parser.add_argument("--db-type", choices=["kv", "sql", "badger", "mysql"], help="Storage backend (DB_TYPE)")
    run_parser.add_argument("--database-url", help="SQLAlchemy URL for the sql backend (DATABASE_URL)")
    run_parser.add_argument("--network", choices=["mainnet", "testnet"], help="Address network (NETWORK)")

    subparsers.add_parser("version", help="Print the version")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Settings from the environment, with command line flags taking precedence"""
    overrides = {
        "HOST": args.host,
        "PORT": args.port,
        "REPO_PATH": args.repo,
        "DB_TYPE": args.db_type,
        "DATABASE_URL": args.database_url,
        "NETWORK": args.network,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def run(settings: Settings) -> None:
    from filauth.main import create_app

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        timeout_keep_alive=settings.IDLE_TIMEOUT,
        log_level=settings.LOG_LEVEL.lower(),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        run(settings_from_args(args))
        return 0
    if args.command == "version":
        print(VERSION)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
