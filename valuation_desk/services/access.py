"""
Role-gated access rules.

Admins see and edit everything. Computer operators and inspectors see and edit
the files and invoices they created or for which they are the report maker.
Computer operators additionally manage the receiving bank accounts; only
admins manage users.
"""

from typing import Any, Iterable, List, Optional

from valuation_desk.models.entities import ROLE_ADMIN, ROLE_COMPUTER_OPERATOR, User


class PermissionDeniedError(Exception):
    """Raised when the acting user may not perform an action"""

    code = "PERMISSION_DENIED"

    def __init__(self, message: str = "You do not have permission to perform this action", action: str = ""):
        self.message = message
        self.action = action
        super().__init__(self.message)


def has_admin_access(user: Optional[User]) -> bool:
    return user is not None and user.role == ROLE_ADMIN


def has_computer_operator_access(user: Optional[User]) -> bool:
    """Admins inherit every computer-operator capability"""
    return user is not None and user.role in (ROLE_ADMIN, ROLE_COMPUTER_OPERATOR)


def can_view(user: Optional[User], record: Any) -> bool:
    """
    Whether ``user`` may see a file or invoice.

    A non-admin may see a record it created or one naming it as report maker.
    """
    if user is None:
        return False
    if has_admin_access(user):
        return True
    if getattr(record, "created_by", None) and record.created_by == user.id:
        return True
    report_maker = getattr(record, "report_maker", None)
    return bool(report_maker) and report_maker == user.full_name


def can_edit(user: Optional[User], record: Any) -> bool:
    return can_view(user, record)


def visible_records(user: Optional[User], records: Iterable[Any]) -> List[Any]:
    """Records ``user`` may see, in their original order"""
    return [record for record in records if can_view(user, record)]


def can_manage_banks(user: Optional[User]) -> bool:
    return has_computer_operator_access(user)


def can_manage_users(user: Optional[User]) -> bool:
    return has_admin_access(user)


def ensure_can_view(user: Optional[User], record: Any) -> None:
    if not can_view(user, record):
        raise PermissionDeniedError("You do not have access to this record", action="view")


def ensure_can_edit(user: Optional[User], record: Any) -> None:
    if not can_edit(user, record):
        raise PermissionDeniedError("You cannot modify this record", action="edit")


def ensure_can_manage_banks(user: Optional[User]) -> None:
    if not can_manage_banks(user):
        raise PermissionDeniedError("Only admins and computer operators can manage banks", action="manage_banks")


def ensure_can_manage_users(user: Optional[User]) -> None:
    if not can_manage_users(user):
        raise PermissionDeniedError("Only admins can manage users", action="manage_users")
