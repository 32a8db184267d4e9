from __future__ import annotations

import sys

from sqlalchemy import select

from leadoff.auth_security import generate_initial_password, hash_password
from leadoff.db import db_session, init_db
from leadoff.models import User


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python -m leadoff.tools.reset_user <email>")
        raise SystemExit(2)

    email = sys.argv[1].strip().lower()
    if not email:
        print("Invalid email.")
        raise SystemExit(2)

    init_db()
    password = generate_initial_password()

    with db_session() as s:
        u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u:
            print(f"No user '{email}'.")
            raise SystemExit(1)
        u.password_hash = hash_password(password)
        u.must_change_password = True
        u.is_active = True

    print(f"OK: '{email}' reactivated with a new initial password: {password}")
    print("The user must change it at the next sign-in.")


if __name__ == "__main__":
    main()
