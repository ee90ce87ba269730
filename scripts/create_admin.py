#!/usr/bin/env python3
"""
Creates the depot administrator credential if it does not exist yet.
Usage: scripts/create_admin.py --login admin [--password ...]
The password falls back to ADMIN_PASSWORD.
"""
import argparse
import logging
import os
import sys

from depot.identity.bootstrap import ensure_admin


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the depot admin account")
    parser.add_argument("--login", default=os.getenv("ADMIN_LOGIN", "admin"))
    parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))
    args = parser.parse_args(argv)
    if not args.password:
        parser.error("--password or ADMIN_PASSWORD is required")

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    _, created = ensure_admin(args.login, args.password)
    print("admin created" if created else "admin already exists")
    return 0


if __name__ == "__main__":
    sys.exit(main())
