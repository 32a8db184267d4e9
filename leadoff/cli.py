from __future__ import annotations

import argparse
import getpass
import logging
from datetime import datetime

from .auth_service import get_user_by_email
from .config import LOG_LEVEL
from .db import init_db
from .master_service import list_companies, list_service_menus, list_symptoms
from .notification_service import mark_all_read, send_reminders, unread_notifications
from .seed import ensure_admin, seed_base
from .slot_service import purge_expired_slots
from .staff_service import list_company_users, list_therapists


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    created = ensure_admin()
    print("Database initialised and master data loaded.")
    if created:
        print("Administrator account created.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "companies":
        for c in list_companies():
            state = "active" if c["is_active"] else "inactive"
            print(f"{c['id']} | {c['name']} | {c['email']} | {state}")
    elif args.entity == "therapists":
        for t in list_therapists():
            print(f"{t['id']} | {t['full_name']} | {t['email']} | available={t['is_available']}")
    elif args.entity == "menus":
        for m in list_service_menus(active_only=False):
            print(f"{m['id']} | {m['name']} ({m['duration_minutes']} min) | {m['price']}")
    elif args.entity == "symptoms":
        for x in list_symptoms(active_only=False):
            print(f"{x['display_order']:>3} | {x['name']}")
    elif args.entity == "users":
        for u in list_company_users():
            print(f"{u['id']} | {u['email']} | {u['full_name']} | {u['company_name'] or '-'}")


def cmd_create_admin(args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass("Password: ")
    created = ensure_admin(email=args.email, password=password, full_name=args.name)
    print("Administrator created." if created else "Administrator already exists (or no password given).")


def cmd_send_reminders(args: argparse.Namespace) -> None:
    now = datetime.fromisoformat(args.now) if args.now else None  # format: 2026-01-14T09:00
    result = send_reminders(now=now)
    print(f"Reminders sent: {result['reminders_sent']} / {result['total_appointments']}")


def cmd_purge_slots(args: argparse.Namespace) -> None:
    count = purge_expired_slots()
    print(f"Expired slots deleted: {count}")


def cmd_notifications(args: argparse.Namespace) -> None:
    """
    Print the unread notifications of a user:
    - looks the user up by email
    - optionally marks them all as read
    """
    u = get_user_by_email(args.email)
    if not u:
        print("User not found.")
        raise SystemExit(1)

    pending = unread_notifications(u.id, limit=args.limit)
    if not pending:
        print("No unread notifications.")
        return

    for n in pending:
        print(f"[{n['id']}] {n['type']} | {n['created_at'].isoformat()} | {n['title']}: {n['message']}")

    if args.mark_read:
        mark_all_read(u.id)
        print("Notifications marked as read.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="leadoff", description="LeadOff booking maintenance CLI")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create tables, master data and administrator")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List entities")
    p_list.add_argument("entity", choices=["companies", "therapists", "menus", "symptoms", "users"])
    p_list.set_defaults(func=cmd_list)

    p_admin = sub.add_parser("create-admin", help="Create an administrator account")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--name", default=None)
    p_admin.add_argument("--password", default=None, help="Prompted when omitted")
    p_admin.set_defaults(func=cmd_create_admin)

    p_rem = sub.add_parser("send-reminders", help="Send reminders for tomorrow's approved appointments")
    p_rem.add_argument("--now", default=None, help="ISO datetime to run as, e.g. 2026-01-14T09:00")
    p_rem.set_defaults(func=cmd_send_reminders)

    p_purge = sub.add_parser("purge-slots", help="Delete expired slots that were never booked")
    p_purge.set_defaults(func=cmd_purge_slots)

    p_not = sub.add_parser("notifications", help="Show unread notifications of a user")
    p_not.add_argument("--email", required=True)
    p_not.add_argument("--limit", type=int, default=50)
    p_not.add_argument("--mark-read", action="store_true", help="Mark them as read after printing")
    p_not.set_defaults(func=cmd_notifications)

    return p


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s [%(name)s] %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()  # make sure the tables exist
    args.func(args)


if __name__ == "__main__":
    main()
