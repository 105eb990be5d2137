from .enums import (AuditAction, CampaignStatus, ConditionField, ConditionOperator, PaymentStatus,
                    ReportKind, SaleStatus, UnitType, UserRole)
from .user_account import UserAccount
from .campaign import Campaign
from .card_tier import CardTierRule, Requirement, RequirementCondition
from .sale_submission import SaleSubmission
from .completed_card_tier import CompletedCardTier
from .special_event import SpecialEvent
from .payout_report import PayoutReport
from .notification import Notification
from .financial_audit import FinancialAudit

__all__ = [
    "AuditAction",
    "CampaignStatus",
    "ConditionField",
    "ConditionOperator",
    "PaymentStatus",
    "ReportKind",
    "SaleStatus",
    "UnitType",
    "UserRole",
    "UserAccount",
    "Campaign",
    "CardTierRule",
    "Requirement",
    "RequirementCondition",
    "SaleSubmission",
    "CompletedCardTier",
    "SpecialEvent",
    "PayoutReport",
    "Notification",
    "FinancialAudit",
]
