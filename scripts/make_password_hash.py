#!/usr/bin/env python3
"""
Print the bcrypt hash of a password, for seeding users by hand.

Usage:
    python scripts/make_password_hash.py <password>
"""

import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from teamstats.services.auth_service import hash_password


def main(argv):
    if len(argv) < 2 or not argv[1]:
        print("Error: Pass in a password as the first argument", file=sys.stderr)
        return 1
    print(hash_password(argv[1]))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
