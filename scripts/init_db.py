import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.policydesk.constants import DEFAULT_DEPARTMENTS  # noqa: E402
from app.policydesk.models import User  # noqa: E402
from app.policydesk.modules.documents.models import DepartmentRecord  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed departments and the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password or department colors.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@policydesk.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///policydesk.db").strip()

    with script_session(db_url) as s:
        existing = {d.name for d in s.query(DepartmentRecord).all()}
        for name, color in DEFAULT_DEPARTMENTS:
            if name not in existing:
                s.add(DepartmentRecord(name=name, color=color))

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                full_name="Administrator",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
