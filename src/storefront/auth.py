"""Admin accounts for storefront.

Identity is resolved from the admin ID the caller presents; session
tokens are handled upstream.
"""

import logging

import bcrypt

from .database import Database
from .errors import AuthenticationError, ValidationError
from .models import Admin, _generate_id, _utc_now

logger = logging.getLogger(__name__)

ADMINS = "admins"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AdminStore:
    """Manages admin accounts."""

    def __init__(self, db: Database):
        self.db = db

    def create_admin(self, email: str, password: str, name: str = "") -> Admin:
        """
        Create an admin.

        Raises:
            ValidationError: If the email is taken or the password is empty.
        """
        email = email.strip().lower()
        if not email or not password:
            raise ValidationError("Admin email and password are required")

        admin = Admin(
            id=_generate_id(),
            email=email,
            name=name,
            password_hash=hash_password(password),
            created_at=_utc_now(),
        )
        with self.db.transaction() as session:
            if session.find_one(ADMINS, lambda d: d.get("email") == email):
                raise ValidationError(f"Admin {email} already exists")
            session.insert_one(ADMINS, admin.to_dict())
        return admin

    def get_admin(self, admin_id: str) -> Admin:
        """
        Get an admin by ID.

        Raises:
            AuthenticationError: If no admin has the ID.
        """
        doc = self.db.get(ADMINS, admin_id)
        if doc is None:
            raise AuthenticationError("Unknown admin")
        return Admin.from_dict(doc)

    def authenticate(self, email: str, password: str) -> Admin:
        """
        Check admin credentials.

        Raises:
            AuthenticationError: If the email or password is wrong.
        """
        email = email.strip().lower()
        doc = self.db.find_one(ADMINS, lambda d: d.get("email") == email)
        if doc is None or not check_password(password, doc["password_hash"]):
            raise AuthenticationError()
        return Admin.from_dict(doc)

    def populate_initial_data(self, email: str, password: str, name: str = "") -> Admin | None:
        """
        Create the default admin if it doesn't exist yet.

        Returns:
            The created admin, or None if nothing was created.
        """
        if not password:
            logger.info("No default admin password configured; skipping admin seed")
            return None
        email = email.strip().lower()
        if self.db.find_one(ADMINS, lambda d: d.get("email") == email):
            logger.debug("Default admin %s already present", email)
            return None
        admin = self.create_admin(email, password, name)
        logger.info("Created default admin %s", email)
        return admin
