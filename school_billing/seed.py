"""Seed the administrator account if not present."""
import logging

from school_billing.config import settings
from school_billing.models.user import User, UserRole
from school_billing.services.credentials import get_password_hash

logger = logging.getLogger(__name__)


async def seed_admin():
    if not settings.admin_password:
        logger.warning("ADMIN_PASSWORD is not set; skipping admin seed")
        return
    existing = await User.find_one(User.email == settings.admin_email)
    if existing:
        return
    await User(
        email=settings.admin_email,
        hashed_password=get_password_hash(settings.admin_password),
        role=UserRole.ADMIN,
        full_name=settings.admin_full_name,
    ).insert()
    logger.info("Seeded admin user %s", settings.admin_email)
