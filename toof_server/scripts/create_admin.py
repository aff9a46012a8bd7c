#!/usr/bin/env python3
# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Create or promote an admin user. Run: python -m toof_server.scripts.create_admin"""

import asyncio
import getpass
import sys

from toof_server.auth import hash_password
from toof_server.database import async_session_maker, init_db
from toof_server.errors import InputValidationError
from toof_server.models import User, UserRole, normalize_email
from toof_server.services.accounts import validate_name, validate_password
from toof_server.services.authorization import get_user_by_email


async def main():
    await init_db()
    email = normalize_email(input("Admin email: "))
    if not email:
        print("Email required")
        sys.exit(1)

    async with async_session_maker() as session:
        user = await get_user_by_email(session, email)
        if user:
            user.role = UserRole.ADMIN
            await session.commit()
            print("Existing user promoted to admin.")
            return

        name = input("Name: ")
        password = getpass.getpass("Password: ")
        try:
            name = validate_name(name)
            validate_password(password)
        except InputValidationError as e:
            print(e.message)
            sys.exit(1)
        session.add(
            User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=UserRole.ADMIN,
            )
        )
        await session.commit()
        print("Admin user created.")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
