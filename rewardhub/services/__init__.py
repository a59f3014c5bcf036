"""
Business logic services for RewardHub.
"""
from .shopify_client import ShopifyClient
from .enrollment_service import EnrollmentService, enrollment_service
from .reward_allocator import RewardAllocator, reward_allocator
from .campaign_service import CampaignService, check_rewards
from .install_service import InstallService, InstallResult
from .points_service import PointsService, validate_referral_code
from .gdpr_service import GdprService

__all__ = [
    'ShopifyClient',
    'EnrollmentService',
    'enrollment_service',
    'RewardAllocator',
    'reward_allocator',
    'CampaignService',
    'check_rewards',
    'InstallService',
    'InstallResult',
    'PointsService',
    'validate_referral_code',
    'GdprService',
]
