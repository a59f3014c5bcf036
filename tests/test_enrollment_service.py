"""
Tests for the Enrollment Service.

Tests cover:
- Enrollment creation and expiry date
- Idempotency while an active enrollment exists
- Validation (missing rows, inactive program, cross-client)
- Campaign enrollment cap reservation
- Expiry job
"""
from datetime import datetime, timedelta

import pytest

from rewardhub.models import Enrollment, EnrollmentStatus, Member, MembershipProgram
from rewardhub.services.enrollment_service import enrollment_service
from rewardhub.utils.exceptions import NotFoundError, StateConflictError, ValidationError

NOW = datetime(2026, 3, 1, 9, 0, 0)


class TestEnroll:
    """EnrollmentService.enroll"""

    def test_creates_active_enrollment(self, sample_member, sample_program):
        enrollment = enrollment_service.enroll(sample_member.id, sample_program.id, source='manual', now=NOW)

        assert enrollment.id is not None
        assert enrollment.status == EnrollmentStatus.ACTIVE.value
        assert enrollment.activated_at == NOW
        assert enrollment.expires_at == NOW + timedelta(days=365)
        assert enrollment.source == 'manual'

    def test_idempotent_while_active(self, sample_member, sample_program):
        first = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW)
        second = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW + timedelta(days=5))

        assert second.id == first.id
        assert Enrollment.query.count() == 1

    def test_re_enrolls_after_expiry(self, sample_member, sample_program):
        first = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW)
        later = NOW + timedelta(days=366)
        second = enrollment_service.enroll(sample_member.id, sample_program.id, now=later)

        assert second.id != first.id
        assert second.expires_at == later + timedelta(days=365)

    def test_missing_member(self, sample_program):
        with pytest.raises(NotFoundError):
            enrollment_service.enroll(9999, sample_program.id)

    def test_missing_program(self, sample_member):
        with pytest.raises(NotFoundError):
            enrollment_service.enroll(sample_member.id, 9999)

    def test_inactive_program(self, db, sample_member, sample_program):
        sample_program.is_active = False
        db.session.commit()

        with pytest.raises(ValidationError, match='not active'):
            enrollment_service.enroll(sample_member.id, sample_program.id)

    def test_cross_client_rejected(self, db, sample_program, other_client):
        outsider = Member(client_id=other_client.id, email='out@example.com', is_active=True)
        db.session.add(outsider)
        db.session.commit()

        with pytest.raises(ValidationError, match='different clients'):
            enrollment_service.enroll(outsider.id, sample_program.id)

    def test_uncommitted_enrollment_rolls_back(self, db, sample_member, sample_program):
        enrollment_service.enroll(sample_member.id, sample_program.id, commit=False)
        db.session.rollback()

        assert Enrollment.query.count() == 0


class TestReserveCampaignSlot:
    """Guarded increment of current_enrollments."""

    def test_unlimited_rule(self, sample_rule):
        for _ in range(3):
            assert enrollment_service.reserve_campaign_slot(sample_rule)
        assert sample_rule.current_enrollments == 3

    def test_cap_is_never_exceeded(self, db, sample_rule):
        sample_rule.max_enrollments = 2
        db.session.commit()

        results = [enrollment_service.reserve_campaign_slot(sample_rule) for _ in range(4)]

        assert results == [True, True, False, False]
        assert sample_rule.current_enrollments == 2
        assert sample_rule.is_full


class TestExpireEnrollments:

    def test_expires_lapsed_enrollments(self, db, sample_member, sample_program):
        lapsed = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW - timedelta(days=400))
        other = Member(client_id=sample_member.client_id, email='fresh@example.com', is_active=True)
        db.session.add(other)
        db.session.commit()
        current = enrollment_service.enroll(other.id, sample_program.id, now=NOW)

        result = enrollment_service.expire_enrollments(now=NOW)

        assert result['expired'] == 1
        assert result['enrollment_ids'] == [lapsed.id]
        assert db.session.get(Enrollment, lapsed.id).status == EnrollmentStatus.EXPIRED.value
        assert db.session.get(Enrollment, current.id).status == EnrollmentStatus.ACTIVE.value

    def test_dry_run_changes_nothing(self, db, sample_member, sample_program):
        lapsed = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW - timedelta(days=400))

        result = enrollment_service.expire_enrollments(now=NOW, dry_run=True)

        assert result == {'expired': 1, 'enrollment_ids': [lapsed.id], 'dry_run': True}
        assert db.session.get(Enrollment, lapsed.id).status == EnrollmentStatus.ACTIVE.value

    def test_revoke(self, sample_member, sample_program):
        enrollment = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW)
        revoked = enrollment_service.revoke(enrollment.id, reason='fraud')

        assert revoked.status == EnrollmentStatus.REVOKED.value
        assert revoked.enrollment_metadata['revoked_reason'] == 'fraud'
        assert enrollment_service.get_active_enrollment(sample_member.id, sample_program.id, NOW) is None

    def test_revoke_twice_conflicts(self, sample_member, sample_program):
        enrollment = enrollment_service.enroll(sample_member.id, sample_program.id, now=NOW)
        enrollment_service.revoke(enrollment.id)

        with pytest.raises(StateConflictError):
            enrollment_service.revoke(enrollment.id)
