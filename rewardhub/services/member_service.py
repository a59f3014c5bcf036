"""
Member lookup and creation for campaign flows.
"""
import logging
from typing import Optional

from ..extensions import db
from ..models import Member

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    email = (email or '').strip().lower()
    return email or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    phone = (phone or '').strip()
    return phone or None


def find_member(client_id: int, email: str = None, phone: str = None, external_id: str = None) -> Optional[Member]:
    """
    Find a member of a client.

    Lookup order: phone, then email, then Shopify customer ID.
    """
    phone = normalize_phone(phone)
    email = normalize_email(email)

    if phone:
        member = Member.query.filter_by(client_id=client_id, phone=phone).first()
        if member:
            return member

    if email:
        member = Member.query.filter_by(client_id=client_id, email=email).first()
        if member:
            return member

    if external_id:
        return Member.query.filter_by(client_id=client_id, external_id=str(external_id)).first()

    return None


def find_or_create_member(
    client_id: int,
    email: str = None,
    phone: str = None,
    full_name: str = None,
    external_id: str = None,
) -> Optional[Member]:
    """
    Find a member or create one from the given contact details.

    Missing contact fields on an existing member are filled in. Returns None
    when neither email nor phone is provided. Flushes but does not commit.
    """
    email = normalize_email(email)
    phone = normalize_phone(phone)

    member = find_member(client_id, email=email, phone=phone, external_id=external_id)

    if member:
        if email and not member.email and not Member.query.filter_by(client_id=client_id, email=email).first():
            member.email = email
        if phone and not member.phone:
            member.phone = phone
        if full_name and not member.full_name:
            member.full_name = full_name
        if external_id and not member.external_id:
            member.external_id = str(external_id)
        return member

    if not email and not phone:
        return None

    member = Member(
        client_id=client_id,
        email=email,
        phone=phone,
        full_name=full_name,
        external_id=str(external_id) if external_id else None,
        is_active=True,
    )
    db.session.add(member)
    db.session.flush()
    logger.info(f"Created member {member.id} for client {client_id}")
    return member
