import os
import bcrypt
from sqlalchemy import select
from carwash.extensions import db
from carwash.models import Base, User
from carwash.services.admin_config import admin_config
from main import create_app

app = create_app()

with app.app_context():
    Base.metadata.create_all(bind=db.engine)
    print("Tables created")

    # Persist the default configuration so admins edit a real row
    admin_config.save_config(admin_config.get_config())
    print("Admin configuration saved")

    email = os.environ.get("SUPERADMIN_EMAIL")
    password = os.environ.get("SUPERADMIN_PASSWORD")
    if email and password:
        existing = db.session.scalar(select(User).where(User.email == email))
        if existing is None:
            db.session.add(
                User(
                    email=email,
                    full_name=os.environ.get("SUPERADMIN_NAME", "Super Admin"),
                    password_hash=bcrypt.hashpw(
                        password.encode("utf-8"), bcrypt.gensalt()
                    ).decode("utf-8"),
                    role="superadmin",
                )
            )
            db.session.commit()
            print(f"Superadmin {email} created")
        else:
            print(f"Superadmin {email} already exists")
    else:
        print("SUPERADMIN_EMAIL/SUPERADMIN_PASSWORD not set, skipping superadmin seed")

print("Database initialized successfully!")
