"""
Form Lifecycle Controller

Owns the form instance state machine:

    SENT --save_draft--> IN_PROGRESS --submit_form--> COMPLETED (terminal)
    SENT --submit_form--> COMPLETED

EXPIRED is never stored. An instance that is not COMPLETED and whose
expires_at has passed is reported as expired on every read and write.

Expected business failures (unknown token, expired, already submitted,
invalid answers) come back as a LifecycleResult with a FailureKind. Anything
else (database errors) rolls the session back and propagates.

Each operation runs its read-check-write sequence inside one transaction,
with the instance row locked FOR UPDATE where the database supports it, and
commits state, data and the audit entry together.

The controller holds no global state; the boundary builds one per request:

    controller = FormLifecycleController(db.session, DraftStore(db.session),
                                         AuditService(db.session))
    result = controller.submit_form(token, payload)
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from models import FormInstance
from services.submission_ids import generate_submission_id
from services.template_service import find_active_template
from services.token_service import (
    clamp_expiry_days,
    format_time_remaining,
    generate_form_token,
    is_expiring_soon,
    validate_token_format,
)
from services.validation import FieldError, validate
from utils import isoformat_utc, normalize_email, utcnow

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    """Expected failure categories returned by the controller."""
    NOT_FOUND = 'NotFound'
    EXPIRED = 'Expired'
    ALREADY_SUBMITTED = 'AlreadySubmitted'
    VALIDATION_FAILED = 'ValidationFailed'
    # Only produced at the HTTP boundary for unexpected faults
    INTERNAL = 'Internal'


FORM_NOT_FOUND = 'Form not found'
FORM_EXPIRED = 'Form has expired'
FORM_ALREADY_SUBMITTED = 'Form has already been submitted'
FORM_NOT_SUBMITTED = 'Form has not been submitted'
TEMPLATE_NOT_FOUND = 'Template not found or inactive'
INSTANCE_NOT_FOUND = 'Original form instance not found'


@dataclass
class LifecycleResult:
    """
    Tagged outcome of a lifecycle operation.

    On success, kind is None and data holds the operation's payload.
    On failure, kind and message are set; errors is filled only for
    VALIDATION_FAILED.
    """
    success: bool
    kind: Optional[FailureKind] = None
    message: Optional[str] = None
    instance: Optional[FormInstance] = None
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[FieldError] = field(default_factory=list)

    @classmethod
    def ok(cls, instance=None, **data):
        return cls(success=True, instance=instance, data=data)

    @classmethod
    def failure(cls, kind: FailureKind, message: str, errors=None):
        return cls(success=False, kind=kind, message=message, errors=list(errors or []))

    def to_error_dict(self) -> Dict[str, Any]:
        payload = {
            'success': False,
            'error': self.message,
            'kind': self.kind.value if self.kind else None,
        }
        if self.errors:
            payload['errors'] = [e.to_dict() for e in self.errors]
        return payload


class FormLifecycleController:
    def __init__(self, session, drafts, audit, validator=validate, clock=utcnow,
                 token_factory=generate_form_token,
                 submission_id_factory=generate_submission_id):
        self.session = session
        self.drafts = drafts
        self.audit = audit
        self.validator = validator
        self.clock = clock
        self.token_factory = token_factory
        self.submission_id_factory = submission_id_factory

    # =========================================================================
    # OWNER OPERATIONS
    # =========================================================================

    def create_instance(self, template_ref, owner_id, client_email,
                        personal_message=None, expiry_days=None) -> LifecycleResult:
        """
        Create a SENT form instance for one client.

        Args:
            template_ref: Template id or slug; must be active
            owner_id: Creating owner
            client_email: Recipient (stored trimmed and lowercased)
            personal_message: Optional note shown on the form and in the email
            expiry_days: Lifetime in days, default 7, clamped to [0.5, 30]

        Returns:
            LifecycleResult with the new instance; does not send email
        """
        return self._run(self._create_instance, template_ref, owner_id, client_email,
                         personal_message, expiry_days)

    def _create_instance(self, template_ref, owner_id, client_email, personal_message, expiry_days):
        template = find_active_template(self.session, template_ref)
        if template is None:
            return LifecycleResult.failure(FailureKind.NOT_FOUND, TEMPLATE_NOT_FOUND)

        now = self.clock()
        days = clamp_expiry_days(expiry_days)

        instance = FormInstance(
            template_id=template.id,
            owner_id=owner_id,
            client_email=normalize_email(client_email),
            secure_token=self.token_factory(),
            personal_message=personal_message or None,
            status=FormInstance.SENT,
            schema_snapshot=copy.deepcopy(template.field_schema),
            template_version=template.version,
            created_at=now,
            expires_at=now + timedelta(days=days),
        )
        self.session.add(instance)
        self.session.flush()

        self.audit.log_form_instance_created(instance, owner_id, at=now)
        logger.info("Form instance %s created from template %s (expires %s)",
                    instance.id, template.slug, instance.expires_at.isoformat())
        return LifecycleResult.ok(instance, template=template, expiry_days=days)

    def resend(self, instance_id, owner_id, expiry_days=None) -> LifecycleResult:
        """Create a fresh instance with the same template, recipient and message."""
        original = self.session.get(FormInstance, instance_id)
        if original is None or original.owner_id != owner_id:
            return LifecycleResult.failure(FailureKind.NOT_FOUND, INSTANCE_NOT_FOUND)

        result = self.create_instance(
            original.template_id,
            owner_id,
            original.client_email,
            personal_message=original.personal_message,
            expiry_days=expiry_days,
        )
        if result.success:
            result.data['resent_from'] = original.id
        return result

    # =========================================================================
    # CLIENT OPERATIONS
    # =========================================================================

    def open_form(self, token) -> LifecycleResult:
        """
        Resolve a form link for rendering.

        Stamps opened_at and logs 'accessed' on the first open only. The
        stored status is left alone; only a client write moves it.
        """
        return self._run(self._open_form, token)

    def _open_form(self, token):
        now = self.clock()
        instance, failure = self._load_writable(token, now)
        if failure:
            return failure

        first_access = instance.opened_at is None
        if first_access:
            instance.opened_at = now
            self.audit.log_form_accessed(instance, first_access=True, at=now)

        draft_data, last_saved_at = self.drafts.get_draft(instance)
        template = instance.template

        return LifecycleResult.ok(
            instance,
            form={
                'token': instance.secure_token,
                'status': instance.status,
                'template': {
                    'id': template.id,
                    'name': template.name,
                    'description': template.description,
                    'version': instance.template_version,
                    'schema': instance.schema_snapshot,
                    'uiSchema': template.ui_schema,
                },
                'personalMessage': instance.personal_message,
                'ownerName': instance.owner.display_name if instance.owner else None,
                'draftData': draft_data,
                'lastSavedAt': isoformat_utc(last_saved_at),
                'expiresAt': isoformat_utc(instance.expires_at),
                'timeRemaining': format_time_remaining(instance.expires_at, now),
                'expiringSoon': is_expiring_soon(instance.expires_at, now),
            },
        )

    def save_draft(self, token, partial_data) -> LifecycleResult:
        """
        Replace the stored draft with partial_data.

        No schema validation is done on drafts. A SENT instance moves to
        IN_PROGRESS.
        """
        return self._run(self._save_draft, token, partial_data)

    def _save_draft(self, token, partial_data):
        now = self.clock()
        instance, failure = self._load_writable(token, now)
        if failure:
            return failure

        snapshot = partial_data or {}
        self.drafts.set_draft(instance, snapshot, now)

        if instance.status == FormInstance.SENT:
            instance.status = FormInstance.IN_PROGRESS

        self.audit.log_form_auto_saved(instance, field_count=len(snapshot), at=now)
        return LifecycleResult.ok(instance, last_saved_at=now, status=instance.status)

    def get_draft(self, token) -> LifecycleResult:
        """Read the current draft. Allowed after submission, refused once expired."""
        return self._run(self._get_draft, token)

    def _get_draft(self, token):
        now = self.clock()
        instance = self._load(token)
        if instance is None:
            return LifecycleResult.failure(FailureKind.NOT_FOUND, FORM_NOT_FOUND)
        if instance.is_expired(now):
            return LifecycleResult.failure(FailureKind.EXPIRED, FORM_EXPIRED)

        draft_data, last_saved_at = self.drafts.get_draft(instance)
        return LifecycleResult.ok(
            instance,
            draft_data=draft_data,
            last_saved_at=last_saved_at,
            status=instance.status,
        )

    def clear_draft(self, token) -> LifecycleResult:
        """Reset the draft to an empty document."""
        return self._run(self._clear_draft, token)

    def _clear_draft(self, token):
        now = self.clock()
        instance, failure = self._load_writable(token, now)
        if failure:
            return failure

        self.drafts.clear_draft(instance, now)
        self.audit.log_draft_cleared(instance, at=now)
        return LifecycleResult.ok(instance, last_saved_at=now, status=instance.status)

    def submit_form(self, token, full_data, ip_address=None, user_agent=None) -> LifecycleResult:
        """
        Validate and finalize the client's answers.

        Validation runs against the schema snapshot taken when the instance
        was created. On failure nothing is written. On success the response,
        the COMPLETED status and the audit entry are committed together.
        """
        return self._run(self._submit_form, token, full_data, ip_address, user_agent)

    def _submit_form(self, token, full_data, ip_address, user_agent):
        now = self.clock()
        instance, failure = self._load_writable(token, now)
        if failure:
            return failure

        data = full_data if full_data is not None else {}
        result = self.validator(instance.schema_snapshot, data)
        if not result.is_valid:
            logger.info("Form instance %s submission rejected with %d error(s)",
                        instance.id, len(result.errors))
            return LifecycleResult.failure(
                FailureKind.VALIDATION_FAILED,
                result.first_message(),
                errors=result.errors,
            )

        submission_id = self.submission_id_factory(_epoch_millis(now))
        self.drafts.finalize(instance, data, submission_id, now,
                             ip_address=ip_address, user_agent=user_agent)

        instance.status = FormInstance.COMPLETED
        instance.submitted_at = now

        self.audit.log_form_submitted(instance, field_count=len(data), submission_id=submission_id,
                                      ip_address=ip_address, user_agent=user_agent, at=now)
        logger.info("Form instance %s submitted as %s", instance.id, submission_id)
        return LifecycleResult.ok(instance, submission_id=submission_id, submitted_at=now)

    def get_submission(self, token) -> LifecycleResult:
        """Return the submitted answers for a COMPLETED instance."""
        instance = self._load(token, lock=False)
        if instance is None:
            return LifecycleResult.failure(FailureKind.NOT_FOUND, FORM_NOT_FOUND)
        response = self.drafts.get_response(instance)
        if not instance.is_completed or response is None or response.submitted_data is None:
            return LifecycleResult.failure(FailureKind.NOT_FOUND, FORM_NOT_SUBMITTED)

        return LifecycleResult.ok(
            instance,
            submission_id=response.submission_id,
            submitted_at=response.submitted_at,
            submitted_data=response.submitted_data,
            template_name=instance.template.name if instance.template else None,
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _run(self, operation, *args):
        """Run one operation as a unit: commit on success, roll back otherwise."""
        try:
            result = operation(*args)
            if result.success:
                self.session.commit()
            else:
                self.session.rollback()
            return result
        except Exception:
            self.session.rollback()
            raise

    def _load(self, token, lock=True) -> Optional[FormInstance]:
        if not validate_token_format(token):
            return None
        query = self.session.query(FormInstance).filter(FormInstance.secure_token == token)
        if lock:
            query = query.with_for_update()
        return query.one_or_none()

    def _load_writable(self, token, now):
        """
        Load an instance that may still be written.

        Check order is significant: a COMPLETED instance reports
        ALREADY_SUBMITTED even when it is also past its expiry.
        """
        instance = self._load(token)
        if instance is None:
            return None, LifecycleResult.failure(FailureKind.NOT_FOUND, FORM_NOT_FOUND)
        if instance.is_completed:
            return instance, LifecycleResult.failure(FailureKind.ALREADY_SUBMITTED, FORM_ALREADY_SUBMITTED)
        if instance.is_expired(now):
            return instance, LifecycleResult.failure(FailureKind.EXPIRED, FORM_EXPIRED)
        return instance, None


def _epoch_millis(value):
    """Milliseconds since the epoch for a naive UTC datetime."""
    return (value - datetime(1970, 1, 1)) // timedelta(milliseconds=1)
