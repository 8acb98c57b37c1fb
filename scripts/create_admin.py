"""
Create the first admin account.
Usage: python scripts/create_admin.py <name> <email> <password>
"""
import asyncio
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from db import db, User, Role, UserRepository
from services.auth_service import hash_password
from utils.validators import validate_email, validate_name, validate_password
from utils.exceptions import ValidationException
from utils.logger import get_logger

logger = get_logger("create_admin")


async def create_admin(name: str, email: str, password: str) -> User:
    """Create an admin account; refuses when an admin already exists."""
    config.ensure_data_dir()
    await db.initialize()

    name = validate_name(name)
    email = validate_email(email)
    password = validate_password(password)

    if await UserRepository.count_by_role(Role.ADMIN) > 0:
        raise ValidationException("Admin sudah ada")
    if await UserRepository.get_by_email(email):
        raise ValidationException("Email sudah terdaftar")

    user = await UserRepository.create(User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=Role.ADMIN,
        email_verified=True
    ))
    logger.audit_admin_action("create_admin", user.id, target=email)
    return user


def main():
    if len(sys.argv) != 4:
        print("Usage: python scripts/create_admin.py <name> <email> <password>")
        sys.exit(1)

    try:
        user = asyncio.run(create_admin(sys.argv[1], sys.argv[2], sys.argv[3]))
    except ValidationException as e:
        print(f"Failed to create admin: {e.message}")
        sys.exit(1)
    print(f"Admin '{user.email}' created successfully!")


if __name__ == "__main__":
    main()
