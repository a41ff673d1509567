"""
Activity Logging Service
Append-only trail of agency-scoped actions
"""
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import desc
from typing import Optional, List, Dict, Any
import logging

from agencyops.models import ActivityLog

logger = logging.getLogger(__name__)


class ActivityAction:
    """Constants for activity actions"""
    AGENCY_CREATED = "agency.created"
    AGENCY_UPDATED = "agency.updated"
    BRANDING_UPDATED = "agency.branding.updated"
    PROFILE_UPDATED = "agency.profile.updated"
    FORM_OPTIONS_UPDATED = "form.options.updated"

    MEMBER_INVITED = "member.invited"
    MEMBER_ROLE_CHANGED = "member.role.changed"
    MEMBER_REMOVED = "member.removed"

    CLIENT_CREATED = "client.created"
    CLIENT_UPDATED = "client.updated"
    CLIENT_ARCHIVED = "client.archived"
    CLIENT_RESTORED = "client.restored"
    CLIENT_DELETED = "client.deleted"

    CONSULTATION_CREATED = "consultation.created"
    CONSULTATION_COMPLETED = "consultation.completed"
    CONSULTATION_DELETED = "consultation.deleted"

    PROPOSAL_CREATED = "proposal.created"
    PROPOSAL_UPDATED = "proposal.updated"
    PROPOSAL_SENT = "proposal.sent"
    PROPOSAL_ACCEPTED = "proposal.accepted"
    PROPOSAL_DECLINED = "proposal.declined"
    PROPOSAL_REVISION_REQUESTED = "proposal.revision_requested"
    PROPOSAL_DELETED = "proposal.deleted"
    PROPOSAL_DUPLICATED = "proposal.duplicated"
    PROPOSAL_READY = "proposal.ready"
    PROPOSAL_STATUS_CHANGED = "proposal.status_changed"

    CONTRACT_CREATED = "contract.created"
    CONTRACT_UPDATED = "contract.updated"
    CONTRACT_SENT = "contract.sent"
    CONTRACT_SIGNED = "contract.signed"
    CONTRACT_DELETED = "contract.deleted"
    CONTRACT_VIEWED = "contract.viewed"
    CONTRACT_STATUS_CHANGED = "contract.status_changed"
    CONTRACT_TERMS_REGENERATED = "contract.terms_regenerated"
    CONTRACT_TEMPLATE_CREATED = "contract_template.created"
    CONTRACT_TEMPLATE_UPDATED = "contract_template.updated"
    CONTRACT_TEMPLATE_DELETED = "contract_template.deleted"

    INVOICE_CREATED = "invoice.created"
    INVOICE_UPDATED = "invoice.updated"
    INVOICE_SENT = "invoice.sent"
    INVOICE_PAID = "invoice.paid"
    INVOICE_CANCELLED = "invoice.cancelled"
    INVOICE_REFUNDED = "invoice.refunded"
    INVOICE_DELETED = "invoice.deleted"
    INVOICE_DUPLICATED = "invoice.duplicated"
    INVOICE_REMINDER_SENT = "invoice.reminder_sent"

    QUOTATION_CREATED = "quotation.created"
    QUOTATION_UPDATED = "quotation.updated"
    QUOTATION_SENT = "quotation.sent"
    QUOTATION_ACCEPTED = "quotation.accepted"
    QUOTATION_DECLINED = "quotation.declined"
    QUOTATION_DELETED = "quotation.deleted"
    QUOTATION_DUPLICATED = "quotation.duplicated"
    QUOTATION_TEMPLATE_CREATED = "quotation_template.created"
    QUOTATION_TEMPLATE_DELETED = "quotation_template.deleted"

    FORM_CREATED = "form.created"
    FORM_UPDATED = "form.updated"
    FORM_DELETED = "form.deleted"
    FORM_SUBMITTED = "form.submitted"
    SUBMISSION_STATUS_CHANGED = "submission.status_changed"
    SUBMISSION_DELETED = "submission.deleted"

    QUESTIONNAIRE_CREATED = "questionnaire.created"
    QUESTIONNAIRE_COMPLETED = "questionnaire.completed"
    QUESTIONNAIRE_DELETED = "questionnaire.deleted"

    EMAIL_SENT = "email.sent"
    EMAIL_FAILED = "email.failed"


class ActivityService:
    """Records and reads the agency activity log"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        agency_id: int,
        action: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        user_id: Optional[int] = None,
        old_values: Optional[Dict] = None,
        new_values: Optional[Dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[ActivityLog]:
        """
        Create an activity log entry.

        Never raises: a failure to log must not break the operation being logged.
        """
        try:
            entry = ActivityLog(
                agency_id=agency_id,
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                old_values=_jsonable(old_values),
                new_values=_jsonable(new_values),
                ip_address=ip_address,
                user_agent=(user_agent or "")[:500] or None,
                log_metadata=_jsonable(metadata) or {}
            )
            self.db.add(entry)
            self.db.flush()

            logger.info(f"Activity: {action} {entity_type}(id={entity_id}) agency={agency_id} user={user_id}")
            return entry

        except Exception as e:
            logger.error(f"Failed to create activity log: {e}")
            return None

    def log_for(self, ctx, action: str, entity_type: str, entity_id: Optional[int] = None, **kwargs):
        """Log using the request's agency context."""
        return self.log(
            agency_id=ctx.agency_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=ctx.user_id,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            **kwargs
        )

    def get_activity_log(
        self,
        agency_id: int,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[ActivityLog]:
        query = self.db.query(ActivityLog).options(joinedload(ActivityLog.user)).filter(
            ActivityLog.agency_id == agency_id
        )
        if entity_type:
            query = query.filter(ActivityLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(ActivityLog.entity_id == entity_id)
        if action:
            query = query.filter(ActivityLog.action == action)
        return query.order_by(desc(ActivityLog.created_at), desc(ActivityLog.id)).offset(offset).limit(limit).all()


def _jsonable(values: Optional[Dict]) -> Optional[Dict]:
    """Coerce Decimal/datetime values so they fit a JSON column."""
    if values is None:
        return None
    result = {}
    for key, value in values.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            result[key] = value
        elif isinstance(value, (list, dict)):
            result[key] = value
        else:
            result[key] = str(value)
    return result
