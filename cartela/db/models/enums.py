from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    VENDOR = "VENDOR"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class SaleStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"
    MANUAL_CONFLICT = "MANUAL_CONFLICT"


class CampaignStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class UnitType(str, enum.Enum):
    PAIR = "PAIR"
    UNIT = "UNIT"


class ConditionField(str, enum.Enum):
    PRODUCT_NAME = "PRODUCT_NAME"
    PRODUCT_CODE = "PRODUCT_CODE"
    SALE_VALUE = "SALE_VALUE"
    PRODUCT_CATEGORY = "PRODUCT_CATEGORY"


class ConditionOperator(str, enum.Enum):
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"


class ReportKind(str, enum.Enum):
    """Whose money a payout report carries.

    VENDOR reports own the included sales and settle them; MANAGER reports
    only reference their subordinates' sales for audit.
    """

    VENDOR = "VENDOR"
    MANAGER = "MANAGER"

    @classmethod
    def for_role(cls, role: UserRole) -> "ReportKind":
        if role == UserRole.MANAGER:
            return cls.MANAGER
        if role == UserRole.VENDOR:
            return cls.VENDOR
        raise ValueError(f"no payout kind for role {role}")

    @property
    def settles_sales(self) -> bool:
        return self is ReportKind.VENDOR


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class AuditAction(str, enum.Enum):
    PREVIEW_BALANCES = "PREVIEW_BALANCES"
    GENERATE_BATCH = "GENERATE_BATCH"
    PROCESS_BATCH = "PROCESS_BATCH"
    CANCEL_BATCH = "CANCEL_BATCH"
    GET_BATCH = "GET_BATCH"
    LIST_BATCHES = "LIST_BATCHES"
