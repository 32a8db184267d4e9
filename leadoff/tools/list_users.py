from __future__ import annotations

import sys

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from leadoff.db import db_session, init_db
from leadoff.models import User


def main() -> None:
    needle = sys.argv[1].strip().lower() if len(sys.argv) > 1 else ""
    init_db()

    with db_session() as s:
        q = select(User).options(selectinload(User.company)).order_by(User.role, User.email)
        if needle:
            q = q.where(User.email.contains(needle))
        users = list(s.scalars(q))

        if not users:
            print("No users.")
            return

        for u in users:
            flags = []
            if not u.is_active:
                flags.append("inactive")
            if u.must_change_password:
                flags.append("must-change-password")
            company = u.company.name if u.company else "-"
            print(f"{u.id} | {u.email} | {u.role.value} | {company} | {', '.join(flags) or 'ok'}")

    print(f"Total: {len(users)}")


if __name__ == "__main__":
    main()
