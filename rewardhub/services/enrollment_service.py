"""
Enrollment service.

Writes member enrollments into membership programs and guards campaign
rule enrollment caps.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy import update, or_

from ..extensions import db
from ..models import Member, MembershipProgram, Enrollment, EnrollmentStatus, CampaignRule
from ..utils.exceptions import NotFoundError, StateConflictError, ValidationError

logger = logging.getLogger(__name__)


class EnrollmentService:
    """
    Service for enrolling members into programs.

    Methods take commit=False when they run inside a larger unit of work
    (campaign processing, token claims); the caller then commits or rolls
    back everything together.
    """

    def get_active_enrollment(self, member_id: int, program_id: int, now: datetime = None) -> Optional[Enrollment]:
        """The member's current (active, unexpired) enrollment in a program, if any."""
        now = now or datetime.utcnow()
        return Enrollment.query.filter(
            Enrollment.member_id == member_id,
            Enrollment.program_id == program_id,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
            or_(Enrollment.expires_at.is_(None), Enrollment.expires_at > now),
        ).order_by(Enrollment.activated_at.desc()).first()

    def enroll(
        self,
        member_id: int,
        program_id: int,
        source: str = 'manual',
        campaign_rule_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: datetime = None,
        commit: bool = True,
    ) -> Enrollment:
        """
        Enroll a member into a program.

        Idempotent: while an active, unexpired enrollment exists for the
        same (member, program), that row is returned and nothing is written.

        Args:
            member_id: Member to enroll
            program_id: Target program
            source: Where the enrollment came from (manual, campaign_auto, token_claim)
            campaign_rule_id: Rule that triggered the enrollment, if any
            metadata: Free-form context stored on the enrollment
            now: Activation time (defaults to utcnow)
            commit: Commit the session when done

        Returns:
            The new or existing Enrollment

        Raises:
            NotFoundError: Member or program missing
            ValidationError: Program inactive or owned by another client
        """
        now = now or datetime.utcnow()

        member = db.session.get(Member, member_id)
        if not member:
            raise NotFoundError('Member', member_id)

        program = db.session.get(MembershipProgram, program_id)
        if not program:
            raise NotFoundError('Program', program_id)

        if not program.is_active:
            raise ValidationError(f"Program '{program.name}' is not active", 'program')

        if program.client_id != member.client_id:
            raise ValidationError('Member and program belong to different clients', 'program')

        existing = self.get_active_enrollment(member_id, program_id, now)
        if existing:
            logger.info(f"Member {member_id} already enrolled in program {program_id} (enrollment {existing.id})")
            return existing

        enrollment = Enrollment(
            member_id=member_id,
            program_id=program_id,
            campaign_rule_id=campaign_rule_id,
            source=source,
            status=EnrollmentStatus.ACTIVE.value,
            activated_at=now,
            expires_at=now + timedelta(days=program.validity_days),
            enrollment_metadata=metadata or {},
        )
        db.session.add(enrollment)
        db.session.flush()

        logger.info(
            f"Enrolled member {member_id} in program {program_id} via {source} "
            f"(enrollment {enrollment.id}, expires {enrollment.expires_at.date()})"
        )

        if commit:
            db.session.commit()

        return enrollment

    def reserve_campaign_slot(self, rule: CampaignRule) -> bool:
        """
        Take one enrollment slot on a campaign rule.

        Single conditional UPDATE so concurrent events cannot push
        current_enrollments past max_enrollments.

        Returns:
            True if a slot was taken, False when the cap is reached
        """
        result = db.session.execute(
            update(CampaignRule)
            .where(
                CampaignRule.id == rule.id,
                or_(
                    CampaignRule.max_enrollments.is_(None),
                    CampaignRule.current_enrollments < CampaignRule.max_enrollments,
                ),
            )
            .values(current_enrollments=CampaignRule.current_enrollments + 1)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(rule)
        return result.rowcount == 1

    def revoke(self, enrollment_id: int, reason: str = None) -> Enrollment:
        """Revoke an enrollment. Already revoked enrollments raise StateConflictError."""
        enrollment = db.session.get(Enrollment, enrollment_id)
        if not enrollment:
            raise NotFoundError('Enrollment', enrollment_id)
        if enrollment.status == EnrollmentStatus.REVOKED.value:
            raise StateConflictError(f"Enrollment {enrollment_id} is already revoked")

        enrollment.status = EnrollmentStatus.REVOKED.value
        if reason:
            enrollment.enrollment_metadata = {**(enrollment.enrollment_metadata or {}), 'revoked_reason': reason}
        db.session.commit()
        return enrollment

    def expire_enrollments(self, now: datetime = None, dry_run: bool = False) -> Dict[str, Any]:
        """
        Mark active enrollments past expires_at as expired.

        Returns:
            Dict with expired count and affected enrollment IDs
        """
        now = now or datetime.utcnow()

        due = Enrollment.query.filter(
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
            Enrollment.expires_at.isnot(None),
            Enrollment.expires_at <= now,
        ).all()

        ids = [e.id for e in due]
        if not dry_run:
            for enrollment in due:
                enrollment.status = EnrollmentStatus.EXPIRED.value
            db.session.commit()
            logger.info(f"Expired {len(ids)} enrollments")

        return {'expired': len(ids), 'enrollment_ids': ids, 'dry_run': dry_run}


enrollment_service = EnrollmentService()
