"""
Database models for the RewardHub platform.
Tenants, programs, campaign rules, members, loyalty points and Shopify storefronts.
"""
from .client import UserRole, Client, Brand, User
from .program import EnrollmentType, Reward, MembershipProgram, ProgramReward
from .campaign import TriggerType, TriggerLogStatus, CampaignRule, CampaignTriggerLog
from .member import (
    EnrollmentStatus,
    VoucherStatus,
    Member,
    Enrollment,
    RewardAllocation,
    Voucher,
    Redemption,
)
from .redemption_token import RedemptionToken
from .store import StoreInstallation, StoreWebhook, StorePlugin, StoreUser, ShopifyOrder
from .loyalty import (
    PointsTransactionType,
    LoyaltyProgram,
    LoyaltyTier,
    MemberLoyaltyStatus,
    PointsTransaction,
    LoyaltyDiscountCode,
    ShopifyWebhookEvent,
    GdprRequest,
)

__all__ = [
    'UserRole',
    'Client',
    'Brand',
    'User',
    'EnrollmentType',
    'Reward',
    'MembershipProgram',
    'ProgramReward',
    'TriggerType',
    'TriggerLogStatus',
    'CampaignRule',
    'CampaignTriggerLog',
    'EnrollmentStatus',
    'VoucherStatus',
    'Member',
    'Enrollment',
    'RewardAllocation',
    'Voucher',
    'Redemption',
    'RedemptionToken',
    'StoreInstallation',
    'StoreWebhook',
    'StorePlugin',
    'StoreUser',
    'ShopifyOrder',
    'PointsTransactionType',
    'LoyaltyProgram',
    'LoyaltyTier',
    'MemberLoyaltyStatus',
    'PointsTransaction',
    'LoyaltyDiscountCode',
    'ShopifyWebhookEvent',
    'GdprRequest',
]
