import asyncio
import importlib
import os
import sys

import psycopg

# ANSI colors
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"
YELLOW = "\033[93m"

REQUIRED_TABLES = ("positions", "processed_signatures")


def print_pass(msg):
    print(f"{msg}: {GREEN}PASS{RESET}")


def print_fail(msg, error=None):
    print(f"{msg}: {RED}FAIL{RESET}")
    if error:
        print(f"  Error: {error}")


def check_env():
    print("Checking Environment Variables...", end=" ")

    from whale_tracker.core.config import validate_env, load_wallets
    try:
        validate_env()
    except RuntimeError as e:
        print_fail("", e)
        return False

    if "postgres" not in os.environ.get("DATABASE_URL", ""):
        print_fail("\nDATABASE_URL invalid scheme")
        return False

    if not load_wallets():
        print(f"\n{YELLOW}WARNING: No active wallets configured.{RESET}", end=" ")

    print(f"{GREEN}PASS{RESET}")
    return True


def check_imports():
    print("Checking Code Integrity (Imports)...", end=" ")
    modules = [
        "whale_tracker.main",
        "whale_tracker.workers.poll_worker",
        "whale_tracker.storage.positions",
        "whale_tracker.storage.ledger",
    ]
    for mod in modules:
        try:
            importlib.import_module(mod)
        except ImportError as e:
            print_fail(f"\nFailed to import {mod}", e)
            return False
        except SyntaxError as e:
            print_fail(f"\nSyntax error in {mod}", e)
            return False

    print(f"{GREEN}PASS{RESET}")
    return True


def check_db():
    print("Checking Database Connectivity...", end=" ")
    db_url = os.environ.get("DATABASE_URL")
    try:
        with psycopg.connect(db_url, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                for table in REQUIRED_TABLES:
                    cur.execute("SELECT to_regclass(%s)", (f"public.{table}",))
                    if not cur.fetchone()[0]:
                        print_fail(f"\nTable '{table}' missing (run scripts/apply_schema.py)")
                        return False
    except psycopg.OperationalError as e:
        print_fail("\nConnection failed", e)
        return False

    print(f"{GREEN}PASS{RESET}")
    return True


async def _check_services():
    from whale_tracker.ingestion.helius import HeliusSource
    from whale_tracker.notify.telegram import TelegramNotifier

    source = HeliusSource()
    notifier = TelegramNotifier()
    try:
        return await source.test_connection(), await notifier.test_connection()
    finally:
        await source.aclose()
        await notifier.aclose()


def check_services():
    print("Checking Helius and Telegram...", end=" ")
    helius_ok, telegram_ok = asyncio.run(_check_services())
    if not helius_ok:
        print_fail("\nHelius API unreachable")
        return False
    if not telegram_ok:
        print_fail("\nTelegram bot unreachable")
        return False

    print(f"{GREEN}PASS{RESET}")
    return True


def run_preflight():
    print(f"\n{YELLOW}Running Deployment Gate Checks...{RESET}\n")

    for check in (check_env, check_imports, check_db, check_services):
        if not check():
            sys.exit(1)

    print(f"\n{GREEN}All systems go! Ready for launch.{RESET}\n")
    sys.exit(0)


if __name__ == "__main__":
    run_preflight()
