"""
User service: accounts, credentials and roles.

Passwords are stored only as PBKDF2 hashes with a per-user salt.
"""

from typing import Any, Dict, List, Optional, Type

from valuation_desk.models.entities import ROLE_ADMIN, ROLES, USERS_KEY, User
from valuation_desk.services.access import PermissionDeniedError, ensure_can_manage_users, has_admin_access
from valuation_desk.services.record_store import RecordStore
from valuation_desk.utils.form_validators import form_validator
from valuation_desk.utils.helpers import new_record_id, now_iso
from valuation_desk.utils.logging_config import get_logger, log_business_event, log_security_event
from valuation_desk.utils.security import hash_password, verify_password
from valuation_desk.utils.validators import ValidationError


class UserService:
    """Manage users and sign-in"""

    def __init__(self, store: RecordStore):
        self.store = store
        self.logger = get_logger("services.users")

    def list_users(self, actor: Optional[User]) -> List[User]:
        ensure_can_manage_users(actor)
        return self.store.list(USERS_KEY)

    def get_user(self, user_id: str, actor: Optional[User]) -> User:
        if actor is None or (actor.id != str(user_id) and not has_admin_access(actor)):
            raise PermissionDeniedError("Only admins can view other users", action="view_user")
        return self.store.get(USERS_KEY, user_id)

    def find_by_username(self, username: str) -> Optional[User]:
        wanted = (username or "").strip().lower()
        for user in self.store.list(USERS_KEY):
            if user.username.lower() == wanted:
                return user
        return None

    def _create(self, data: Dict[str, Any]) -> User:
        if self.find_by_username(data["username"]) is not None:
            raise ValidationError("Username already exists", "username", "DUPLICATE")

        password_hash, salt = hash_password(data["password"])
        user = User(
            id=new_record_id("user", (u.id for u in self.store.list(USERS_KEY))),
            username=data["username"],
            full_name=data["full_name"],
            role=data.get("role") or "computer-operator",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            address=data.get("address") or "",
            password_hash=password_hash,
            password_salt=salt,
            is_active=True,
            created_at=now_iso(),
        )
        self.store.add(USERS_KEY, user)
        log_business_event("user_created", "user", user.id, username=user.username, role=user.role)
        return user

    def create_user(self, form: Dict[str, Any], actor: Optional[User]) -> User:
        """
        Create a user account (admins only)

        Raises:
            ValidationError: For a missing field, a duplicate username or a short password
        """
        ensure_can_manage_users(actor)
        return self._create(form_validator.validate_user_form(form))

    def ensure_default_admin(self, config_class: Type) -> Optional[User]:
        """Seed an admin account from configuration when there are no users at all"""
        if self.store.count(USERS_KEY) > 0:
            return None
        admin = self._create(
            form_validator.validate_user_form(
                {
                    "username": config_class.DEFAULT_ADMIN_USERNAME,
                    "password": config_class.DEFAULT_ADMIN_PASSWORD,
                    "full_name": config_class.DEFAULT_ADMIN_FULL_NAME,
                    "role": ROLE_ADMIN,
                }
            )
        )
        self.logger.warning(
            "Seeded default admin account; change its password",
            extra={"category": "default_admin_created", "username": admin.username},
        )
        return admin

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """The matching active user, or None"""
        user = self.find_by_username(username)
        if user is None or not verify_password(password or "", user.password_hash, user.password_salt):
            log_security_event("login_failed", {"username": username, "reason": "bad_credentials"})
            return None
        if not user.is_active:
            log_security_event("login_failed", {"username": username, "reason": "inactive"})
            return None

        self.store.set_current_user(user)
        log_business_event("user_logged_in", "user", user.id, username=user.username)
        return user

    def logout(self, user: Optional[User]) -> None:
        self.store.clear_current_user()
        if user is not None:
            log_business_event("user_logged_out", "user", user.id, username=user.username)

    def _save(self, user: User, actor: Optional[User]) -> User:
        self.store.update(USERS_KEY, user)
        if actor is not None and actor.id == user.id:
            self.store.set_current_user(user)
        return user

    def update_profile(self, user_id: str, form: Dict[str, Any], actor: Optional[User]) -> User:
        """Users edit their own profile; admins may edit anyone's"""
        user = self.get_user(user_id, actor)
        data = form_validator.validate_profile_form(form)
        for key, value in data.items():
            setattr(user, key, value if value is not None else "")
        self._save(user, actor)
        log_business_event("user_profile_updated", "user", user.id, changed_fields=sorted(data.keys()))
        return user

    def change_role(self, user_id: str, role: str, actor: Optional[User]) -> User:
        ensure_can_manage_users(actor)
        if role not in ROLES:
            raise ValidationError(f"Invalid role. Allowed values: {', '.join(ROLES)}", "role", "INVALID_VALUE")
        user = self.store.get(USERS_KEY, user_id)
        old_role = user.role
        user.role = role
        self._save(user, actor)
        log_security_event("role_changed", {"user_id": user.id, "old_role": old_role, "new_role": role})
        return user

    def change_password(
        self,
        user_id: str,
        new_password: str,
        actor: Optional[User],
        current_password: Optional[str] = None,
    ) -> User:
        """
        Set a new password

        Users changing their own password must supply the current one; admins
        resetting someone else's need not.
        """
        user = self.get_user(user_id, actor)
        form_validator.validate_password(new_password, "new_password")

        resetting_other = actor is not None and actor.id != user.id and has_admin_access(actor)
        if not resetting_other and not verify_password(current_password or "", user.password_hash, user.password_salt):
            log_security_event("password_change_failed", {"user_id": user.id})
            raise ValidationError("Current password is incorrect", "current_password", "INVALID_VALUE")

        user.password_hash, user.password_salt = hash_password(new_password)
        self._save(user, actor)
        log_security_event("password_changed", {"user_id": user.id, "changed_by": actor.id if actor else None})
        return user

    def set_active(self, user_id: str, active: bool, actor: Optional[User]) -> User:
        ensure_can_manage_users(actor)
        user = self.store.get(USERS_KEY, user_id)
        if actor is not None and actor.id == user.id and not active:
            raise ValidationError("You cannot deactivate your own account", "is_active", "INVALID_VALUE")
        user.is_active = active
        self._save(user, actor)
        log_security_event("user_activated" if active else "user_deactivated", {"user_id": user.id})
        return user

    def delete_user(self, user_id: str, actor: Optional[User], confirmed: bool = False) -> User:
        """
        Delete a user account

        Raises:
            ConfirmationRequiredError: Unless ``confirmed`` is set
        """
        ensure_can_manage_users(actor)
        if actor is not None and actor.id == str(user_id):
            raise ValidationError("You cannot delete your own account", "id", "INVALID_VALUE")
        removed = self.store.remove(USERS_KEY, user_id, confirmed=confirmed)
        log_business_event("user_deleted", "user", removed.id, username=removed.username)
        return removed
