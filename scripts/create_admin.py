#!/usr/bin/env python3
"""
Create (or promote) a newsletter back-office admin.

Run with: python scripts/create_admin.py admin@example.com --password 's3cret!'
Omit --password to be prompted.
"""

import argparse
import asyncio
import getpass
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from app.api.deps import get_password_hash
from app.database import async_session_maker, init_db
from app.models.user import User


async def create_admin(email: str, password: str, first_name: str | None, last_name: str | None) -> None:
    await init_db()

    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user:
            user.is_admin = True
            user.is_active = True
            user.hashed_password = get_password_hash(password)
            print(f"Updated existing user {email} as admin")
        else:
            db.add(User(
                email=email,
                hashed_password=get_password_hash(password),
                first_name=first_name,
                last_name=last_name,
                is_active=True,
                is_admin=True,
            ))
            print(f"Created admin {email}")

        await db.commit()


def main():
    parser = argparse.ArgumentParser(description="Create a newsletter admin user")
    parser.add_argument("email")
    parser.add_argument("--password", help="Password (prompted when omitted)")
    parser.add_argument("--first-name")
    parser.add_argument("--last-name")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        parser.error("password must be at least 8 characters")

    asyncio.run(create_admin(args.email, password, args.first_name, args.last_name))


if __name__ == "__main__":
    main()
