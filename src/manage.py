"""FreshCart management CLI.

Creates and drops the ordering schema on the configured SQL provider, and lets
an operator look at delayed jobs that ran out of retries.

Usage:
    python src/manage.py setup-db      # Create all tables
    python src/manage.py drop-db       # Drop all tables
    python src/manage.py dead-jobs     # List jobs parked as dead
"""

import argparse
import sys


def setup_database():
    """Create the ordering schema."""
    from ordering.domain import ordering
    from ordering.utils.db import setup_db

    print("Initializing ordering domain...")
    ordering.init()
    print("Creating ordering database schema...")
    setup_db(ordering)
    print("Done.")


def drop_database():
    """Drop the ordering schema."""
    from ordering.domain import ordering
    from ordering.utils.db import drop_db

    print("Initializing ordering domain...")
    ordering.init()
    print("Dropping ordering database schema...")
    drop_db(ordering)
    print("Done.")


def list_dead_jobs(queue=None):
    """Print every dead job with its last error. Returns how many there are."""
    from ordering.scheduling import get_job_queue

    dead = (queue or get_job_queue()).dead_jobs()
    if not dead:
        print("No dead jobs.")
        return 0

    for job in sorted(dead, key=lambda job: job.run_at):
        print(f"{job.id}  kind={job.kind}  attempts={job.attempts}  last_error={job.last_error}")
    print(f"{len(dead)} dead job(s).")
    return len(dead)


def main():
    parser = argparse.ArgumentParser(description="FreshCart management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("dead-jobs", help="List delayed jobs that exhausted their retries")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "dead-jobs":
        list_dead_jobs()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
