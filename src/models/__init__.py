"""Database model type definitions."""

from src.models.company import Company, CustomPlan
from src.models.invitation import Invitation, InvitationStatus
from src.models.permission import (
    CompanyPermission,
    Permission,
    Role,
    RoleCategory,
    RolePermission,
)
from src.models.session import Session, UserCompanySession
from src.models.user import TaxUser, UserCompany, UserRole

__all__ = [
    "Company",
    "CustomPlan",
    "TaxUser",
    "UserCompany",
    "UserRole",
    "Invitation",
    "InvitationStatus",
    "Session",
    "UserCompanySession",
    "Role",
    "RoleCategory",
    "Permission",
    "RolePermission",
    "CompanyPermission",
]
