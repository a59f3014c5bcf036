"""
Loyalty points service.

Points are earned from Shopify orders at the member's tier rate and spent
on single-use discount codes, either a free amount of points against an
order or a catalog reward with a points_cost.

Balances only move through one conditional UPDATE per change, so a
concurrent spend can never take points_balance below zero. Every change
appends a PointsTransaction carrying the balance it left.

Usage:
    service = PointsService(client_id)
    service.award_order_points(member, order_id='1001', order_amount=Decimal('250'))
    code = service.redeem_points(member, 500, order_amount=Decimal('80'))
"""
import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from typing import Optional, Dict, Any, Tuple

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import (
    LoyaltyDiscountCode,
    LoyaltyProgram,
    LoyaltyTier,
    Member,
    MemberLoyaltyStatus,
    PointsTransaction,
    PointsTransactionType,
    Reward,
)
from ..utils.exceptions import (
    DuplicateTransactionError,
    InsufficientPointsError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from .discount_sync import sync_after_commit
from .reward_allocator import CODE_ALPHABET, generate_voucher_code

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
REFERRAL_CODE_LENGTH = 8


def points_for_amount(order_amount: Decimal, tier: Optional[LoyaltyTier]) -> int:
    """floor(order_amount * earn_rate / earn_divisor); one point per unit without a tier."""
    if order_amount is None or order_amount <= 0:
        return 0
    rate = tier.points_earn_rate if tier and tier.points_earn_rate else Decimal('1')
    divisor = tier.points_earn_divisor if tier and tier.points_earn_divisor else Decimal('1')
    return int((Decimal(order_amount) * rate / divisor).to_integral_value(rounding=ROUND_DOWN))


def generate_referral_code() -> str:
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def validate_referral_code(code: str, client_id: int = None) -> Dict[str, Any]:
    """
    Look up a member's referral code.

    Codes are case-insensitive. With client_id, codes from other clients
    are reported invalid.
    """
    status = MemberLoyaltyStatus.query.filter_by(referral_code=(code or '').strip().upper()).first()
    if not status:
        return {'valid': False, 'message': 'Invalid referral code'}

    if client_id is not None and status.member.client_id != client_id:
        return {'valid': False, 'message': 'Referral code is not valid for this program'}

    first_name = (status.member.full_name or '').split(' ')[0]
    return {
        'valid': True,
        'referrer_name': first_name or None,
        'program_name': status.program.name,
        'client_id': status.member.client_id,
        'loyalty_program_id': status.program_id,
        'referrer_member_id': status.member_id,
    }


class PointsService:
    """Points earning, adjustment and redemption for one client."""

    def __init__(self, client_id: int):
        self.client_id = client_id

    # ==================== Program and tiers ====================

    def get_program(self, required: bool = True) -> Optional[LoyaltyProgram]:
        program = LoyaltyProgram.query.filter_by(client_id=self.client_id, is_active=True).first()
        if not program and required:
            raise NotFoundError('Loyalty program')
        return program

    @staticmethod
    def default_tier(program: LoyaltyProgram) -> Optional[LoyaltyTier]:
        tier = program.tiers.filter_by(is_default=True).first()
        return tier or program.tiers.order_by(LoyaltyTier.tier_level.asc()).first()

    def tier_for_points(self, program: LoyaltyProgram, lifetime_points: int) -> Optional[LoyaltyTier]:
        """Highest tier whose min_points the lifetime total reaches."""
        tier = (
            program.tiers
            .filter(LoyaltyTier.min_points <= lifetime_points)
            .order_by(LoyaltyTier.min_points.desc(), LoyaltyTier.tier_level.desc())
            .first()
        )
        return tier or self.default_tier(program)

    def _check_member(self, member: Member) -> None:
        if member.client_id != self.client_id:
            raise NotFoundError('Member', member.id)

    def get_status(self, member: Member, program: LoyaltyProgram = None) -> Optional[MemberLoyaltyStatus]:
        program = program or self.get_program()
        return MemberLoyaltyStatus.query.filter_by(member_id=member.id, program_id=program.id).first()

    def get_or_create_status(self, member: Member, program: LoyaltyProgram = None) -> MemberLoyaltyStatus:
        """Member's standing in the active program, created on the default tier. Flushes, no commit."""
        self._check_member(member)
        program = program or self.get_program()

        status = self.get_status(member, program)
        if status:
            return status

        referral_code = generate_referral_code()
        for _ in range(5):
            if not MemberLoyaltyStatus.query.filter_by(referral_code=referral_code).first():
                break
            referral_code = generate_referral_code()

        tier = self.default_tier(program)
        status = MemberLoyaltyStatus(
            member_id=member.id,
            program_id=program.id,
            current_tier_id=tier.id if tier else None,
            points_balance=0,
            lifetime_points_earned=0,
            lifetime_points_redeemed=0,
            total_orders=0,
            total_spend=Decimal('0'),
            referral_code=referral_code,
        )
        db.session.add(status)
        db.session.flush()
        logger.info(f"Member {member.id} joined loyalty program {program.id}")
        return status

    # ==================== Balance changes ====================

    def _change_balance(self, status: MemberLoyaltyStatus, delta: int, **increments) -> int:
        """
        Move points_balance by delta in one conditional UPDATE.

        Spends only match rows holding at least the amount spent.

        Returns:
            The new balance

        Raises:
            InsufficientPointsError: Balance below the spend
        """
        stmt = update(MemberLoyaltyStatus).where(MemberLoyaltyStatus.id == status.id)
        if delta < 0:
            stmt = stmt.where(MemberLoyaltyStatus.points_balance >= -delta)

        values = {'points_balance': MemberLoyaltyStatus.points_balance + delta}
        for column, amount in increments.items():
            values[column] = getattr(MemberLoyaltyStatus, column) + amount

        result = db.session.execute(stmt.values(**values).execution_options(synchronize_session=False))
        db.session.refresh(status)
        if result.rowcount != 1:
            raise InsufficientPointsError(status.points_balance, -delta)
        return status.points_balance

    def _record(
        self,
        status: MemberLoyaltyStatus,
        transaction_type: PointsTransactionType,
        points: int,
        description: str,
        reference_id: str = None,
        order_amount: Decimal = None,
        metadata: Dict[str, Any] = None,
    ) -> PointsTransaction:
        transaction = PointsTransaction(
            loyalty_status_id=status.id,
            member_id=status.member_id,
            transaction_type=transaction_type.value,
            points_amount=points,
            balance_after=status.points_balance,
            order_amount=order_amount,
            reference_id=reference_id,
            description=description,
            transaction_metadata=metadata or {},
        )
        db.session.add(transaction)
        return transaction

    def _refresh_tier(self, status: MemberLoyaltyStatus) -> None:
        tier = self.tier_for_points(status.program, status.lifetime_points_earned)
        if tier and tier.id != status.current_tier_id:
            logger.info(f"Member {status.member_id} moved to tier {tier.tier_name}")
            status.current_tier_id = tier.id

    # ==================== Earning ====================

    def calculate_points(self, order_amount: Decimal, member: Member = None) -> Dict[str, Any]:
        """Points an order would earn, at the member's tier when known. Nothing is written."""
        program = self.get_program()
        status = self.get_status(member, program) if member else None
        tier = (status.current_tier if status else None) or self.default_tier(program)

        return {
            'program_id': program.id,
            'points': points_for_amount(order_amount, tier),
            'points_name': program.points_name,
            'tier_name': tier.tier_name if tier else 'Base',
            'earn_rate': float(tier.points_earn_rate) if tier else 1.0,
            'earn_divisor': float(tier.points_earn_divisor) if tier else 1.0,
        }

    def award_order_points(
        self,
        member: Member,
        order_id: str,
        order_amount: Decimal,
        commit: bool = True,
    ) -> Optional[PointsTransaction]:
        """
        Credit points for an order once.

        Returns None without writing when the client has no active program,
        the order already earned points, or it earns none.
        """
        program = self.get_program(required=False)
        if not program:
            return None

        order_id = str(order_id)
        already = PointsTransaction.query.filter_by(
            member_id=member.id,
            reference_id=order_id,
            transaction_type=PointsTransactionType.EARNED.value,
        ).first()
        if already:
            logger.info(f"Order {order_id} already earned points for member {member.id}")
            return None

        status = self.get_or_create_status(member, program)
        points = points_for_amount(order_amount, status.current_tier or self.default_tier(program))
        if points <= 0:
            return None

        self._change_balance(
            status,
            points,
            lifetime_points_earned=points,
            total_orders=1,
            total_spend=Decimal(order_amount),
        )
        transaction = self._record(
            status,
            PointsTransactionType.EARNED,
            points,
            f"Earned {points} points from order {order_id}",
            reference_id=order_id,
            order_amount=order_amount,
        )
        self._refresh_tier(status)

        logger.info(f"Awarded {points} points to member {member.id} for order {order_id}")
        if commit:
            db.session.commit()
        return transaction

    def adjust_points(self, member: Member, points: int, reason: str = None, order_id: str = None) -> PointsTransaction:
        """
        Manual credit (positive) or debit (negative).

        Raises:
            ValidationError: Zero points
            DuplicateTransactionError: order_id already has a points transaction
            InsufficientPointsError: Debit larger than the balance
        """
        if points == 0:
            raise ValidationError('points must not be zero', 'points')

        program = self.get_program()
        status = self.get_or_create_status(member, program)

        if order_id is not None:
            order_id = str(order_id)
            if PointsTransaction.query.filter_by(member_id=member.id, reference_id=order_id).first():
                raise DuplicateTransactionError(order_id)

        try:
            increments = {'lifetime_points_earned': points} if points > 0 else {}
            self._change_balance(status, points, **increments)
            transaction = self._record(
                status,
                PointsTransactionType.ADJUSTMENT,
                points,
                reason or f"Manual adjustment of {points} points",
                reference_id=order_id,
            )
            if points > 0:
                self._refresh_tier(status)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Adjusted member {member.id} by {points} points (balance {status.points_balance})")
        return transaction

    # ==================== Redemption ====================

    def redemption_quote(self, member: Member, order_amount: Decimal, points_to_redeem: int = None) -> Dict[str, Any]:
        """
        How many points can go against an order and what they are worth.

        The cap is the balance, then max_redemption_percent of the order
        (converted to points at points_value), then max_redemption_points.
        """
        program = self.get_program()
        status = self.get_or_create_status(member, program)
        tier = status.current_tier or self.default_tier(program)

        if not program.allow_redemption:
            return {'can_redeem': False, 'error': 'Points redemption is not enabled',
                    'max_points': 0, 'discount_value': 0.0}
        if not tier or not tier.points_value:
            return {'can_redeem': False, 'error': 'Loyalty program has no redemption tier',
                    'max_points': 0, 'discount_value': 0.0}

        max_points = status.points_balance
        if tier.max_redemption_percent:
            by_percent = Decimal(order_amount) * tier.max_redemption_percent / 100 / tier.points_value
            max_points = min(max_points, int(by_percent.to_integral_value(rounding=ROUND_DOWN)))
        if tier.max_redemption_points:
            max_points = min(max_points, tier.max_redemption_points)
        max_points = max(max_points, 0)

        points = min(points_to_redeem, max_points) if points_to_redeem else max_points
        return {
            'can_redeem': True,
            'points_balance': status.points_balance,
            'max_points': max_points,
            'points_to_redeem': points,
            'discount_value': float(self._points_value(points, tier)),
            'points_value': float(tier.points_value),
            'points_name': program.points_name,
            'currency': program.currency,
        }

    @staticmethod
    def _points_value(points: int, tier: LoyaltyTier) -> Decimal:
        return (Decimal(points) * tier.points_value).quantize(CENTS, rounding=ROUND_DOWN)

    def _new_discount_code(self) -> str:
        prefix = current_app.config.get('LOYALTY_CODE_PREFIX', 'LOYAL')
        code = generate_voucher_code(prefix)
        for _ in range(5):
            if not LoyaltyDiscountCode.query.filter_by(code=code).first():
                break
            code = generate_voucher_code(prefix)
        return code

    def _spend(
        self,
        status: MemberLoyaltyStatus,
        points: int,
        discount: Dict[str, Any],
        description: str,
        now: datetime,
    ) -> LoyaltyDiscountCode:
        """Debit points and create the discount code in one commit."""
        code = self._new_discount_code()
        validity = current_app.config.get('LOYALTY_CODE_VALIDITY_DAYS', 30)
        try:
            self._change_balance(status, -points, lifetime_points_redeemed=points)
            discount_code = LoyaltyDiscountCode(
                client_id=self.client_id,
                member_id=status.member_id,
                code=code,
                points_redeemed=points,
                is_used=False,
                expires_at=now + timedelta(days=validity),
                shopify_synced=False,
                **discount,
            )
            db.session.add(discount_code)
            self._record(
                status,
                PointsTransactionType.REDEEMED,
                -points,
                f"{description} ({code})",
                reference_id=code,
                metadata={'reward_id': discount.get('reward_id'), 'shop_domain': discount.get('shop_domain')},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return discount_code

    def redeem_points(
        self,
        member: Member,
        points_to_redeem: int,
        order_amount: Decimal,
        shop_domain: str = None,
        now: datetime = None,
    ) -> LoyaltyDiscountCode:
        """
        Spend points on a fixed-amount discount code for an order.

        Raises:
            StateConflictError: Redemption disabled for the program
            InsufficientPointsError: Balance below points_to_redeem
            ValidationError: More points than the order's redemption cap
        """
        now = now or datetime.utcnow()
        quote = self.redemption_quote(member, order_amount)
        if not quote['can_redeem']:
            raise StateConflictError(quote['error'])

        status = self.get_or_create_status(member)
        if points_to_redeem > status.points_balance:
            raise InsufficientPointsError(status.points_balance, points_to_redeem)
        if points_to_redeem > quote['max_points']:
            raise ValidationError(
                f"At most {quote['max_points']} points can be redeemed on this order", 'points_to_redeem'
            )

        tier = status.current_tier or self.default_tier(status.program)
        discount_code = self._spend(
            status,
            points_to_redeem,
            {
                'discount_type': 'fixed_amount',
                'discount_value': self._points_value(points_to_redeem, tier),
                'minimum_order_value': Decimal('0'),
                'shop_domain': shop_domain,
            },
            f"Redeemed {points_to_redeem} points",
            now,
        )
        logger.info(f"Member {member.id} redeemed {points_to_redeem} points for {discount_code.code}")
        sync_after_commit(discount_code)
        return discount_code

    def redeem_reward(
        self,
        member: Member,
        reward: Reward,
        shop_domain: str = None,
        now: datetime = None,
    ) -> Tuple[LoyaltyDiscountCode, bool]:
        """
        Buy a catalog reward with its points_cost.

        An unused, unexpired code for the same reward is handed back instead
        of spending again.

        Returns:
            (discount_code, created)
        """
        now = now or datetime.utcnow()
        if reward.client_id != self.client_id or reward.status != 'active':
            raise NotFoundError('Reward', reward.id)
        if not reward.points_cost or reward.points_cost <= 0:
            raise ValidationError('Reward cannot be redeemed with points', 'reward')

        program = self.get_program()
        if not program.allow_redemption:
            raise StateConflictError('Points redemption is not enabled')
        status = self.get_or_create_status(member, program)

        existing = LoyaltyDiscountCode.query.filter(
            LoyaltyDiscountCode.member_id == member.id,
            LoyaltyDiscountCode.reward_id == reward.id,
            LoyaltyDiscountCode.is_used.is_(False),
            LoyaltyDiscountCode.expires_at > now,
        ).first()
        if existing:
            return existing, False

        discount_code = self._spend(
            status,
            reward.points_cost,
            {
                'reward_id': reward.id,
                'discount_type': reward.discount_type or 'fixed_amount',
                'discount_value': reward.discount_value or Decimal('0'),
                'minimum_order_value': reward.min_purchase_amount or Decimal('0'),
                'shop_domain': shop_domain,
            },
            f"Redeemed for {reward.title}",
            now,
        )
        logger.info(f"Member {member.id} redeemed reward {reward.id} for {reward.points_cost} points")
        sync_after_commit(discount_code)
        return discount_code, True

    # ==================== Status ====================

    def loyalty_status(self, member: Member) -> Dict[str, Any]:
        """Balance, tier, next tier, recent ledger entries and open codes. Enrolls on first lookup."""
        program = self.get_program()
        status = self.get_or_create_status(member, program)
        db.session.commit()

        current_level = status.current_tier.tier_level if status.current_tier else 0
        next_tier = program.tiers.filter(LoyaltyTier.tier_level > current_level).order_by(
            LoyaltyTier.tier_level.asc()
        ).first()

        transactions = PointsTransaction.query.filter_by(loyalty_status_id=status.id).order_by(
            PointsTransaction.created_at.desc(), PointsTransaction.id.desc()
        ).limit(20).all()
        codes = LoyaltyDiscountCode.query.filter_by(member_id=member.id, is_used=False).order_by(
            LoyaltyDiscountCode.created_at.desc()
        ).all()

        return {
            'program': program.to_dict(),
            'status': status.to_dict(),
            'next_tier': next_tier.to_dict() if next_tier else None,
            'points_to_next_tier': (
                max(next_tier.min_points - status.lifetime_points_earned, 0) if next_tier else None
            ),
            'transactions': [t.to_dict() for t in transactions],
            'discount_codes': [c.to_dict() for c in codes],
        }
