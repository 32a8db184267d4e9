"""
LeadOff booking backend.

Layout:
- config.py               : settings from the environment (.env)
- db.py / models.py       : SQLAlchemy engine, sessions, ORM models and enums
- workflow.py             : appointment/slot status machine
- booking_service.py      : requests, approvals, rejections, cancellations
- slot_service.py         : therapist availability
- treatment_service.py    : treatment reports
- master_service.py       : companies, service menus, symptoms
- staff_service.py        : therapists and company users
- notification_service.py : in-app notifications and reminders
- email_service.py        : transactional email (Resend)
- report_service.py       : company treatment report
- api_*.py                : FastAPI app and routers
- cli.py, tools/          : maintenance entry points
"""
