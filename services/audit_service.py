"""
Audit Service - Append-only audit trail for form instances, responses and templates.

Entries are added to the caller's session and committed with the change they
describe, so a rolled-back operation leaves no audit row behind. Metadata
carries counts and identifiers only, never answer contents.
"""

import logging

from flask import has_request_context, request
from sqlalchemy import or_

from models import AuditLog
from utils import isoformat_utc

logger = logging.getLogger(__name__)


def get_request_context():
    """
    Extract IP address and user agent from the current request.
    Returns (ip_address, user_agent) tuple; (None, None) outside a request.
    """
    if not has_request_context():
        return None, None

    # Get IP, handling proxies
    ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
    if ip_address and ',' in ip_address:
        ip_address = ip_address.split(',')[0].strip()

    user_agent = request.headers.get('User-Agent', '')[:500] or None
    return ip_address, user_agent


class AuditService:
    def __init__(self, session):
        self.session = session

    def log_event(self, entity_type, entity_id, action, actor_type, actor_id=None,
                  metadata=None, ip_address=None, user_agent=None):
        """
        Stage one audit entry on the session.

        Args:
            entity_type: One of the AuditLog entity constants
            entity_id: ID of the entity (stored as text)
            action: One of the AuditLog action constants
            actor_type: OWNER, CLIENT or SYSTEM
            actor_id: Owner id or client email, when known
            metadata: Dict of counts/ids; must not contain answer contents
            ip_address / user_agent: Default to the current request's

        Returns:
            The pending AuditLog instance
        """
        if ip_address is None and user_agent is None:
            ip_address, user_agent = get_request_context()

        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_type=actor_type,
            actor_id=str(actor_id) if actor_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            event_metadata=metadata or {},
        )
        self.session.add(entry)
        logger.debug("Audit %s %s:%s by %s", action, entity_type, entity_id, actor_type)
        return entry

    # =========================================================================
    # FORM INSTANCE EVENTS
    # =========================================================================

    def log_form_instance_created(self, instance, owner_id, at=None):
        """Log when an owner creates (sends) a form instance."""
        return self._with_time(self.log_event(
            entity_type=AuditLog.FORM_INSTANCE,
            entity_id=instance.id,
            action=AuditLog.CREATED,
            actor_type=AuditLog.OWNER,
            actor_id=owner_id,
            metadata={
                'templateId': instance.template_id,
                'templateVersion': instance.template_version,
                'clientEmail': instance.client_email,
            },
        ), at)

    def log_form_accessed(self, instance, first_access=True, at=None):
        """Log when the client opens the form link."""
        return self._with_time(self.log_event(
            entity_type=AuditLog.FORM_INSTANCE,
            entity_id=instance.id,
            action=AuditLog.ACCESSED,
            actor_type=AuditLog.CLIENT,
            actor_id=instance.client_email,
            metadata={'firstAccess': first_access},
        ), at)

    def log_form_auto_saved(self, instance, field_count, at=None):
        """Log a draft save. Only the field count is recorded."""
        return self._with_time(self.log_event(
            entity_type=AuditLog.FORM_RESPONSE,
            entity_id=instance.id,
            action=AuditLog.AUTO_SAVE,
            actor_type=AuditLog.CLIENT,
            actor_id=instance.client_email,
            metadata={'fieldCount': field_count},
        ), at)

    def log_draft_cleared(self, instance, at=None):
        return self._with_time(self.log_event(
            entity_type=AuditLog.FORM_RESPONSE,
            entity_id=instance.id,
            action=AuditLog.DRAFT_CLEARED,
            actor_type=AuditLog.CLIENT,
            actor_id=instance.client_email,
        ), at)

    def log_form_submitted(self, instance, field_count, submission_id,
                           ip_address=None, user_agent=None, at=None):
        """Log a successful final submission."""
        return self._with_time(self.log_event(
            entity_type=AuditLog.FORM_INSTANCE,
            entity_id=instance.id,
            action=AuditLog.SUBMITTED,
            actor_type=AuditLog.CLIENT,
            actor_id=instance.client_email,
            metadata={
                'fieldCount': field_count,
                'submissionId': submission_id,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        ), at)

    # =========================================================================
    # EMAIL EVENTS
    # =========================================================================

    def log_email_event(self, instance_id, email_type, recipient, success,
                        attempts=1, message_id=None, error=None):
        """Log the outcome of an email delivery attempt sequence."""
        metadata = {
            'emailType': email_type,
            'recipient': recipient,
            'attempts': attempts,
        }
        if message_id:
            metadata['messageId'] = message_id
        if error:
            metadata['error'] = str(error)[:500]

        return self.log_event(
            entity_type=AuditLog.FORM_INSTANCE,
            entity_id=instance_id,
            action=AuditLog.EMAIL_SENT if success else AuditLog.EMAIL_FAILED,
            actor_type=AuditLog.SYSTEM,
            metadata=metadata,
        )

    # =========================================================================
    # TEMPLATE EVENTS
    # =========================================================================

    def log_template_changed(self, template, action, actor_id=None, actor_type=AuditLog.OWNER):
        """Log template creation, update or deactivation."""
        return self.log_event(
            entity_type=AuditLog.FORM_TEMPLATE,
            entity_id=template.id,
            action=action,
            actor_type=actor_type,
            actor_id=actor_id,
            metadata={
                'slug': template.slug,
                'version': template.version,
            },
        )

    # =========================================================================
    # QUERY HELPERS
    # =========================================================================

    def _history_query(self, entity_type, entity_id):
        query = self.session.query(AuditLog).filter(AuditLog.entity_id == str(entity_id))
        if entity_type == AuditLog.FORM_INSTANCE:
            # Response events are keyed by their instance id
            query = query.filter(or_(
                AuditLog.entity_type == AuditLog.FORM_INSTANCE,
                AuditLog.entity_type == AuditLog.FORM_RESPONSE,
            ))
        else:
            query = query.filter(AuditLog.entity_type == entity_type)
        return query

    def get_entity_history(self, entity_type, entity_id, limit=50, offset=0):
        """
        Get audit history for an entity, most recent first.

        For form instances this includes the response events (drafts,
        clears) recorded against the same instance id.

        Returns:
            List of AuditLog objects
        """
        return self._history_query(entity_type, entity_id).order_by(
            AuditLog.created_at.desc(),
            AuditLog.id.desc(),
        ).offset(offset).limit(limit).all()

    def count_entity_history(self, entity_type, entity_id):
        return self._history_query(entity_type, entity_id).count()

    @staticmethod
    def _with_time(entry, at):
        if at is not None:
            entry.created_at = at
        return entry


_EVENT_DISPLAY = {
    AuditLog.CREATED: {'icon': 'fas fa-paper-plane', 'color': 'primary', 'label': 'Form Sent'},
    AuditLog.ACCESSED: {'icon': 'fas fa-eye', 'color': 'info', 'label': 'Opened'},
    AuditLog.AUTO_SAVE: {'icon': 'fas fa-save', 'color': 'secondary', 'label': 'Draft Saved'},
    AuditLog.DRAFT_CLEARED: {'icon': 'fas fa-eraser', 'color': 'warning', 'label': 'Draft Cleared'},
    AuditLog.SUBMITTED: {'icon': 'fas fa-check-circle', 'color': 'success', 'label': 'Submitted'},
    AuditLog.EMAIL_SENT: {'icon': 'fas fa-envelope', 'color': 'success', 'label': 'Email Sent'},
    AuditLog.EMAIL_FAILED: {'icon': 'fas fa-exclamation-triangle', 'color': 'danger', 'label': 'Email Failed'},
    AuditLog.TEMPLATE_CREATED: {'icon': 'fas fa-plus-circle', 'color': 'success', 'label': 'Template Created'},
    AuditLog.TEMPLATE_UPDATED: {'icon': 'fas fa-edit', 'color': 'info', 'label': 'Template Updated'},
    AuditLog.TEMPLATE_DEACTIVATED: {'icon': 'fas fa-ban', 'color': 'danger', 'label': 'Template Deactivated'},
}


def format_event_for_display(entry):
    """
    Format an audit entry for display in the owner UI.

    Returns a dict with display-friendly data.
    """
    display = _EVENT_DISPLAY.get(entry.action, {
        'icon': 'fas fa-circle',
        'color': 'secondary',
        'label': entry.action.replace('_', ' ').title(),
    })

    return {
        'id': entry.id,
        'entityType': entry.entity_type,
        'entityId': entry.entity_id,
        'action': entry.action,
        'actorType': entry.actor_type,
        'actorId': entry.actor_id,
        'metadata': entry.event_metadata or {},
        'createdAt': isoformat_utc(entry.created_at),
        'ipAddress': entry.ip_address,
        'icon': display['icon'],
        'color': display['color'],
        'label': display['label'],
    }
