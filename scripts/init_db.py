import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

from app.pms.config import load_settings
from app.pms.rbac import ensure_roles, ensure_superadmin
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles and the superadmin account in an idempotent way.
    The superadmin is healed on every run (active, superadmin role, configured
    names, password reset when it no longer matches SUPERADMIN_PASSWORD).
    """
    load_dotenv()
    settings = load_settings()
    db_url = (database_url or settings.database_url).strip()

    # Use a direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        roles = ensure_roles(s)
        ensure_superadmin(
            s,
            email=settings.superadmin_email,
            password=settings.superadmin_password,
            first_name=settings.superadmin_first_name,
            last_name=settings.superadmin_last_name,
        )

    print("Initialized database (seed_only).")
    print(f"Roles: {', '.join(sorted(roles))}")
    print(f"Superadmin email: {settings.superadmin_email}")
    print("Superadmin password: (from SUPERADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
