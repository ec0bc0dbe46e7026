from __future__ import annotations

import os
from getpass import getpass

from homelab import create_app
from homelab.auth.service import RegisterService
from homelab.bootstrap import bootstrap_defaults
from homelab.extensions import db
from homelab.models import User, UserRole, UserStatus


def main() -> None:
    app = create_app()

    with app.app_context():
        db.create_all()
        bootstrap_defaults(commit=True)

        username = os.getenv("ADMIN_USERNAME", "admin")
        email = os.getenv("ADMIN_EMAIL", "admin@homelab.local")
        password = os.getenv("ADMIN_PASSWORD")
        if not password:
            password = getpass("Admin password: ")

        user = User.query.filter_by(username=username).one_or_none()
        if user is None:
            result = RegisterService().register(
                {
                    "first_name": "Admin",
                    "last_name": "Homelab",
                    "username": username,
                    "email": email,
                    "password": password,
                },
                role=UserRole.ADMIN,
                status=UserStatus.ACTIVE,
            )
            if not result.ok:
                raise SystemExit(f"Could not create admin user: {result.message}")
            print(f"Created admin user: {username}")
            return

        user.set_password(password)
        user.role = UserRole.ADMIN
        user.status = UserStatus.ACTIVE
        db.session.commit()
        print(f"Updated admin user: {username}")


if __name__ == "__main__":
    main()
