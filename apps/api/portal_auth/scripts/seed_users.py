"""
Create one demo account per role for local development.

Usage: python -m portal_auth.scripts.seed_users
"""
from portal_auth.core.security import hash_password
from portal_auth.db.session import SessionLocal
from portal_auth.models.user import User
from portal_auth.sessions.policy import ROLE_HIERARCHY

DEMO_PASSWORD = "password123"


def seed():
    db = SessionLocal()
    try:
        for role in ROLE_HIERARCHY:
            email = f"{role.replace('_', '.')}@portal.local"
            if db.query(User).filter(User.email == email).first():
                print(f"  {email} already exists")
                continue
            db.add(User(
                email=email,
                hashed_password=hash_password(DEMO_PASSWORD),
                full_name=role.replace("_", " ").title(),
                role=role,
            ))
            print(f"  created {email} ({role})")
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    print("Seeding demo users...")
    seed()
    print("Done.")
