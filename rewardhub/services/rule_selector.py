"""
Campaign rule selection.

Fetches a client's live campaign rules in evaluation order and picks the
first one an event satisfies.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_

from ..models.campaign import CampaignRule
from ..models.program import MembershipProgram
from .trigger_evaluator import TriggerEvent, rule_matches

logger = logging.getLogger(__name__)


def select_rules(client_id: int, trigger_type=None, now: datetime = None) -> List[CampaignRule]:
    """
    Active rules for a client ordered for evaluation.

    A rule is live when is_active is set, its program is active, and now
    falls inside [start_date, end_date] (null bounds are open).

    Order: priority descending, then insertion order (created_at, id).

    Args:
        client_id: Tenant ID
        trigger_type: A trigger type or list of them to restrict to
        now: Evaluation time (defaults to utcnow)
    """
    now = now or datetime.utcnow()

    query = CampaignRule.query.join(
        MembershipProgram, CampaignRule.program_id == MembershipProgram.id
    ).filter(
        CampaignRule.client_id == client_id,
        CampaignRule.is_active.is_(True),
        MembershipProgram.is_active.is_(True),
        or_(CampaignRule.start_date.is_(None), CampaignRule.start_date <= now),
        or_(CampaignRule.end_date.is_(None), CampaignRule.end_date >= now),
    )

    if trigger_type:
        if isinstance(trigger_type, (list, tuple, set)):
            query = query.filter(CampaignRule.trigger_type.in_(list(trigger_type)))
        else:
            query = query.filter(CampaignRule.trigger_type == trigger_type)

    return query.order_by(
        CampaignRule.priority.desc(),
        CampaignRule.created_at.asc(),
        CampaignRule.id.asc(),
    ).all()


def first_matching_rule(rules: Iterable[CampaignRule], event: TriggerEvent) -> Optional[CampaignRule]:
    """First rule (in the given order) whose exclusions pass and trigger fires."""
    for rule in rules:
        matched, reason = rule_matches(rule, event)
        if matched:
            return rule
        logger.debug(f"Rule {rule.id} skipped: {reason}")
    return None
