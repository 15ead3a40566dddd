"""
Draft storage for form responses.

Drafts are whole-document snapshots: every save replaces the stored draft
with the client's full current state. The store only stages changes on the
session it was given; committing is the caller's job so that a draft write
and its audit entry land in the same transaction.
"""

from datetime import datetime
from typing import Optional, Tuple

from models import FormInstance, FormResponse


class DraftStore:
    def __init__(self, session):
        self.session = session

    def get_response(self, instance: FormInstance) -> Optional[FormResponse]:
        """The instance's response row, or None if the client never wrote."""
        return (
            self.session.query(FormResponse)
            .filter(FormResponse.instance_id == instance.id)
            .one_or_none()
        )

    def get_draft(self, instance: FormInstance) -> Tuple[dict, Optional[datetime]]:
        """Return (draft_data, last_saved_at); an unwritten draft is ({}, None)."""
        response = self.get_response(instance)
        if response is None:
            return {}, None
        return dict(response.draft_data or {}), response.last_saved_at

    def set_draft(self, instance: FormInstance, snapshot: dict, saved_at: datetime) -> FormResponse:
        """Replace the stored draft with snapshot."""
        response = self._get_or_create(instance)
        # Fresh dict so the JSON column registers the change
        response.draft_data = dict(snapshot or {})
        response.last_saved_at = saved_at
        return response

    def clear_draft(self, instance: FormInstance, saved_at: datetime) -> FormResponse:
        return self.set_draft(instance, {}, saved_at)

    def finalize(self, instance: FormInstance, submitted_data: dict, submission_id: str,
                 submitted_at: datetime, ip_address: str = None,
                 user_agent: str = None) -> FormResponse:
        """Record the submitted payload and clear the draft."""
        response = self._get_or_create(instance)
        response.submitted_data = dict(submitted_data)
        response.submission_id = submission_id
        response.submitted_at = submitted_at
        response.submission_ip = ip_address
        response.submission_user_agent = (user_agent or '')[:500] or None
        response.draft_data = {}
        response.last_saved_at = submitted_at
        return response

    def _get_or_create(self, instance: FormInstance) -> FormResponse:
        response = self.get_response(instance)
        if response is None:
            response = FormResponse(instance_id=instance.id, draft_data={})
            self.session.add(response)
        return response
