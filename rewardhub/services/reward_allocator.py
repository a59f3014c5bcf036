"""
Reward allocation and voucher service.

Turns an enrollment into reward allocations, allocations into vouchers,
and records voucher redemptions.

Invariant: quantity_redeemed <= quantity_allocated on every allocation.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import (
    Enrollment,
    ProgramReward,
    Reward,
    RewardAllocation,
    Voucher,
    VoucherStatus,
    Redemption,
)
from ..utils.exceptions import NotFoundError, LimitExceededError, StateConflictError

logger = logging.getLogger(__name__)

# Unambiguous characters for voucher codes (no 0/O, 1/I)
CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 8


def generate_voucher_code(prefix: str = 'RH') -> str:
    """Random voucher code like RH-7KQ2M9XA."""
    body = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
    return f'{prefix}-{body}'


class RewardAllocator:
    """Service for allocating program rewards and managing vouchers."""

    def allocate_for_enrollment(self, enrollment: Enrollment, commit: bool = True) -> List[RewardAllocation]:
        """
        Create one allocation per active program reward.

        quantity_allocated is the program reward's quantity_limit (1 when
        unset), trimmed to the program's max_rewards_total and
        max_rewards_per_brand caps. Rewards already allocated for this
        enrollment are skipped.

        Returns:
            All allocations of the enrollment (existing and new)
        """
        program = enrollment.program

        existing = {a.reward_id: a for a in enrollment.allocations}
        total_allocated = sum(a.quantity_allocated for a in existing.values())
        per_brand: Dict[Optional[int], int] = {}
        for allocation in existing.values():
            brand_id = allocation.reward.brand_id if allocation.reward else None
            per_brand[brand_id] = per_brand.get(brand_id, 0) + allocation.quantity_allocated

        program_rewards = (
            ProgramReward.query
            .join(Reward, ProgramReward.reward_id == Reward.id)
            .filter(
                ProgramReward.program_id == program.id,
                ProgramReward.is_active.is_(True),
                Reward.status == 'active',
            )
            .order_by(ProgramReward.id.asc())
            .all()
        )

        created = []
        for program_reward in program_rewards:
            if program_reward.reward_id in existing:
                continue

            quantity = program_reward.quantity_limit or 1

            if program.max_rewards_total is not None:
                quantity = min(quantity, program.max_rewards_total - total_allocated)

            brand_id = program_reward.reward.brand_id
            if brand_id is not None and program.max_rewards_per_brand is not None:
                quantity = min(quantity, program.max_rewards_per_brand - per_brand.get(brand_id, 0))

            if quantity <= 0:
                logger.info(
                    f"Skipping reward {program_reward.reward_id} for enrollment {enrollment.id}: program cap reached"
                )
                continue

            allocation = RewardAllocation(
                member_id=enrollment.member_id,
                enrollment_id=enrollment.id,
                reward_id=program_reward.reward_id,
                quantity_allocated=quantity,
                quantity_redeemed=0,
                expires_at=enrollment.expires_at,
            )
            db.session.add(allocation)
            created.append(allocation)

            total_allocated += quantity
            per_brand[brand_id] = per_brand.get(brand_id, 0) + quantity

        db.session.flush()
        logger.info(f"Allocated {len(created)} rewards for enrollment {enrollment.id}")

        if commit:
            db.session.commit()

        return list(existing.values()) + created

    def issue_vouchers(self, allocation: RewardAllocation, now: datetime = None, commit: bool = True) -> List[Voucher]:
        """
        Create vouchers for the unissued quantity of an allocation.

        Every voucher gets a unique internal code. Generic rewards hand out the
        reward's shared coupon code at checkout; unique rewards hand out the
        voucher's own code.
        """
        now = now or datetime.utcnow()
        reward = allocation.reward

        outstanding = allocation.quantity_allocated - allocation.vouchers.count()
        if outstanding <= 0:
            return []

        expires_at = now + timedelta(days=current_app.config.get('VOUCHER_VALIDITY_DAYS', 30))
        if allocation.expires_at and allocation.expires_at < expires_at:
            expires_at = allocation.expires_at

        vouchers = []
        for _ in range(outstanding):
            code = generate_voucher_code()
            shared = reward.coupon_type == 'generic' and reward.generic_coupon_code
            voucher = Voucher(
                reward_id=reward.id,
                member_id=allocation.member_id,
                allocation_id=allocation.id,
                code=code,
                coupon_code=reward.generic_coupon_code if shared else code,
                status=VoucherStatus.AVAILABLE.value,
                expires_at=expires_at,
            )
            db.session.add(voucher)
            vouchers.append(voucher)

        db.session.flush()

        if commit:
            db.session.commit()

        return vouchers

    def redeem_voucher(
        self,
        code: str,
        channel: str = 'online',
        location: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: datetime = None,
    ) -> Redemption:
        """
        Redeem a voucher by code.

        Raises:
            NotFoundError: Unknown code
            StateConflictError: Voucher already used, revoked or expired
            LimitExceededError: Allocation fully redeemed
        """
        now = now or datetime.utcnow()

        voucher = Voucher.query.filter_by(code=code).first()
        if not voucher:
            raise NotFoundError('Voucher')

        if voucher.status != VoucherStatus.AVAILABLE.value:
            raise StateConflictError(f"Voucher is {voucher.status}")

        if voucher.expires_at and voucher.expires_at <= now:
            voucher.status = VoucherStatus.EXPIRED.value
            db.session.commit()
            raise StateConflictError("Voucher has expired")

        try:
            allocation_result = db.session.execute(
                update(RewardAllocation)
                .where(
                    RewardAllocation.id == voucher.allocation_id,
                    RewardAllocation.quantity_redeemed < RewardAllocation.quantity_allocated,
                )
                .values(quantity_redeemed=RewardAllocation.quantity_redeemed + 1)
                .execution_options(synchronize_session=False)
            )
            if allocation_result.rowcount != 1:
                allocation = db.session.get(RewardAllocation, voucher.allocation_id)
                raise LimitExceededError(
                    'Redemption', allocation.quantity_allocated, allocation.quantity_redeemed
                )

            voucher_result = db.session.execute(
                update(Voucher)
                .where(Voucher.id == voucher.id, Voucher.status == VoucherStatus.AVAILABLE.value)
                .values(status=VoucherStatus.REDEEMED.value, redeemed_at=now)
                .execution_options(synchronize_session=False)
            )
            if voucher_result.rowcount != 1:
                raise StateConflictError("Voucher was redeemed concurrently")

            redemption = Redemption(
                voucher_id=voucher.id,
                member_id=voucher.member_id,
                reward_id=voucher.reward_id,
                redemption_channel=channel,
                redemption_location=location,
                redemption_metadata=metadata or {},
                redeemed_at=now,
            )
            db.session.add(redemption)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        db.session.refresh(voucher)
        logger.info(f"Voucher {voucher.code} redeemed via {channel}")
        return redemption

    def get_member_rewards(self, member_id: int) -> List[Dict[str, Any]]:
        """Allocations of a member with their vouchers."""
        allocations = RewardAllocation.query.filter_by(member_id=member_id).order_by(
            RewardAllocation.created_at.desc()
        ).all()

        results = []
        for allocation in allocations:
            data = allocation.to_dict()
            data['vouchers'] = [v.to_dict() for v in allocation.vouchers]
            results.append(data)
        return results


reward_allocator = RewardAllocator()
