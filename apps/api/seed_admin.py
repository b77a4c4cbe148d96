#!/usr/bin/env python3
"""
Create the first super admin account so users can be managed through the API

Usage: python seed_admin.py <phone> <password> [first_name]
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from sqlmodel import Session, select
from database import create_db_engine, create_db_and_tables
from models import User, UserRole
from auth import get_password_hash
from validators.password_validator import validate_password

def seed_admin(phone: str, password: str, first_name: str = "Admin") -> int:
    validate_password(password, phone)

    engine = create_db_engine()
    create_db_and_tables(engine)

    with Session(engine) as session:
        existing = session.exec(select(User).where(User.phone == phone)).first()
        if existing:
            print(f"User with phone {phone} already exists (id={existing.id})")
            return existing.id

        admin = User(
            first_name=first_name,
            last_name="",
            phone=phone,
            password_hash=get_password_hash(password),
            role=UserRole.SUPER_ADMIN,
            is_active=True
        )
        session.add(admin)
        session.commit()
        session.refresh(admin)
        print(f"Super admin created (id={admin.id}, phone={phone})")
        return admin.id

if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)
    seed_admin(*sys.argv[1:4])
