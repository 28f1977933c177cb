#!/usr/bin/env python3
"""
CETI — Demo Seed.

Creates an administrator, three collaborators, three institutional
programs with memberships and a handful of tasks in every status.

Usage:
    python scripts/seed_demo.py                    # add to the current DB
    python scripts/seed_demo.py --reset            # drop + recreate tables first
    python scripts/seed_demo.py --password s3cret  # password for all demo accounts
"""

import argparse
import logging
import sys

sys.path.insert(0, ".")

from ceti import create_app
from ceti.models import db
from ceti.services.seed_service import seed_demo

logger = logging.getLogger("seed_demo")


def main():
    parser = argparse.ArgumentParser(description="Seed CETI demo data")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    parser.add_argument("--password", default="ceti1234", help="Password for every demo account")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
            logger.warning("Database reset")
        summary = seed_demo(password=args.password)

    print(f"Demo data ready: {summary}")
    print("Sign in with admin@ceti.mx / " + args.password)


if __name__ == "__main__":
    main()
