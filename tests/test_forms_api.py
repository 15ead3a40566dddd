"""
HTTP boundary tests for the form, template and health routes.

Status mapping: NotFound 404, Expired and AlreadySubmitted 400,
ValidationFailed 422, bad request bodies 400, anonymous owner calls 401.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import FakeClock, VALID_ANSWERS
from models import AuditLog, FormInstance
from services.draft_store import DraftStore
from services.email_service import EmailResult, EmailService
from services.form_lifecycle import FormLifecycleController
from utils import utcnow


@pytest.fixture
def created(owner_client, template):
    """Response body of a successful POST /forms."""
    response = owner_client.post('/forms', json={
        'templateId': template.id,
        'clientEmail': ' Client@Example.com ',
        'personalMessage': 'Please fill this in before Friday.',
    })
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def token(created):
    return created['formInstance']['secureToken']


@pytest.fixture
def expired_token(session, audit, template, owner):
    controller = FormLifecycleController(session, DraftStore(session), audit,
                                         clock=FakeClock(utcnow() - timedelta(days=10)))
    return controller.create_instance(template.id, owner.id, 'late@example.com').instance.secure_token


class TestCreateForm:

    def test_create(self, created):
        assert created['success'] is True
        assert created['formInstance']['status'] == FormInstance.SENT
        assert created['formInstance']['clientEmail'] == 'client@example.com'
        assert created['formUrl'] == 'http://forms.test/f/' + created['formInstance']['secureToken']
        assert created['emailSent'] is True
        assert created['emailId'].startswith('dev-email-')
        assert created['message'] == 'Form created successfully. Email sent to client.'

    def test_create_by_slug(self, owner_client, template):
        response = owner_client.post('/forms', json={'templateId': 'contact-details',
                                                     'clientEmail': 'a@example.com'})
        assert response.status_code == 201

    def test_requires_login(self, client, template):
        response = client.post('/forms', json={'templateId': template.id, 'clientEmail': 'a@example.com'})
        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_missing_email(self, owner_client, template):
        response = owner_client.post('/forms', json={'templateId': template.id})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'clientEmail: clientEmail is required'

    def test_invalid_email(self, owner_client, template):
        response = owner_client.post('/forms', json={'templateId': template.id, 'clientEmail': 'nope'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'clientEmail: Please enter a valid email address'

    @pytest.mark.parametrize('days', [0.1, 31, 'soon'])
    def test_expiry_days_out_of_range(self, owner_client, template, days):
        response = owner_client.post('/forms', json={'templateId': template.id,
                                                     'clientEmail': 'a@example.com', 'expiryDays': days})
        assert response.status_code == 400
        assert response.get_json()['error'].startswith('expiryDays: ')

    def test_unknown_template(self, owner_client, template):
        response = owner_client.post('/forms', json={'templateId': 999, 'clientEmail': 'a@example.com'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Template not found or inactive'

    def test_invalid_json(self, owner_client):
        response = owner_client.post('/forms', data='not json', content_type='application/json')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid JSON data'

    def test_body_must_be_object(self, owner_client):
        response = owner_client.post('/forms', json=['a', 'b'])
        assert response.status_code == 400

    def test_email_failure_is_a_warning(self, owner_client, template, session):
        failure = EmailResult(success=False, error='SendGrid returned status 401')
        with patch.object(EmailService, 'send', return_value=failure):
            response = owner_client.post('/forms', json={'templateId': template.id,
                                                         'clientEmail': 'a@example.com'})

        body = response.get_json()
        assert response.status_code == 201
        assert body['emailSent'] is False
        assert body['emailError'] == 'SendGrid returned status 401'
        assert session.query(FormInstance).count() == 1
        assert session.query(AuditLog).filter_by(action=AuditLog.EMAIL_FAILED).count() == 1


class TestOwnerViews:

    def test_list_and_filter(self, owner_client, created, expired_token):
        all_forms = owner_client.get('/forms').get_json()
        assert all_forms['pagination']['total'] == 2

        expired = owner_client.get('/forms?status=expired').get_json()['forms']
        assert [f['secureToken'] for f in expired] == [expired_token]
        assert expired[0]['effectiveStatus'] == FormInstance.EXPIRED

        sent = owner_client.get('/forms?status=SENT').get_json()['forms']
        assert [f['id'] for f in sent] == [created['formInstance']['id']]

    def test_unknown_status_filter(self, owner_client):
        assert owner_client.get('/forms?status=ARCHIVED').status_code == 400

    def test_detail_includes_submission(self, owner_client, client, created, token):
        client.post(f'/forms/{token}/submit', json=VALID_ANSWERS)
        body = owner_client.get(f"/forms/{created['formInstance']['id']}").get_json()
        assert body['formInstance']['status'] == FormInstance.COMPLETED
        assert body['formInstance']['submission']['submittedData'] == VALID_ANSWERS

    def test_other_owner_cannot_see_form(self, app, other_owner, created):
        other = app.test_client(user=other_owner)
        assert other.get(f"/forms/{created['formInstance']['id']}").status_code == 404
        assert other.get(f"/forms/{created['formInstance']['id']}/history").status_code == 404

    def test_history(self, owner_client, client, created, token):
        client.get(f'/forms/{token}')
        client.post(f'/forms/{token}/draft', json={'name': 'Ada'})
        body = owner_client.get(f"/forms/{created['formInstance']['id']}/history").get_json()
        actions = {e['action'] for e in body['events']}
        assert {AuditLog.CREATED, AuditLog.EMAIL_SENT, AuditLog.ACCESSED, AuditLog.AUTO_SAVE} <= actions
        assert body['pagination']['total'] == 4

    def test_resend(self, owner_client, created):
        instance_id = created['formInstance']['id']
        response = owner_client.post(f'/forms/{instance_id}/resend', json={'expiryDays': 3})
        body = response.get_json()
        assert response.status_code == 201
        assert body['resentFrom'] == instance_id
        assert body['formInstance']['secureToken'] != created['formInstance']['secureToken']

    def test_resend_missing(self, owner_client):
        assert owner_client.post('/forms/999/resend', json={}).status_code == 404


class TestClientRoutes:

    def test_open_form(self, client, token):
        response = client.get(f'/forms/{token}')
        form = response.get_json()['form']
        assert response.status_code == 200
        assert form['personalMessage'] == 'Please fill this in before Friday.'
        assert form['ownerName'] == 'Maple Immigration'
        assert form['template']['name'] == 'Contact Details'

    def test_unknown_token_404(self, client):
        response = client.get('/forms/' + 'z' * 43)
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Form not found'

    def test_expired_400(self, client, expired_token):
        response = client.get(f'/forms/{expired_token}')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Form has expired'

    def test_draft_round(self, client, token):
        saved = client.post(f'/forms/{token}/draft', json={'name': 'Ada'})
        assert saved.get_json()['status'] == FormInstance.IN_PROGRESS

        draft = client.get(f'/forms/{token}/draft').get_json()
        assert draft['draftData'] == {'name': 'Ada'}
        assert draft['lastSavedAt'].endswith('Z')

        cleared = client.delete(f'/forms/{token}/draft')
        assert cleared.status_code == 200
        assert client.get(f'/forms/{token}/draft').get_json()['draftData'] == {}

    def test_autosave(self, client, token):
        assert client.post(f'/forms/{token}/autosave', json={'formData': {'email': 'a@b.co'}}).status_code == 200
        assert client.get(f'/forms/{token}/draft').get_json()['draftData'] == {'email': 'a@b.co'}

    def test_autosave_rejects_non_object(self, client, token):
        assert client.post(f'/forms/{token}/autosave', json={'formData': 'text'}).status_code == 400

    def test_autosave_without_form_data_keeps_draft(self, client, token):
        draft = {'name': 'Ada', 'email': 'ada@example.com'}
        client.post(f'/forms/{token}/draft', json=draft)

        response = client.post(f'/forms/{token}/autosave', json={'data': {'name': 'Other'}})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'formData must be an object'
        assert client.get(f'/forms/{token}/draft').get_json()['draftData'] == draft

    def test_submit(self, client, token, session):
        response = client.post(f'/forms/{token}/submit', json=VALID_ANSWERS,
                               headers={'User-Agent': 'pytest-browser'})
        body = response.get_json()
        assert response.status_code == 200
        assert body['submissionId'].startswith('SUB-')
        assert body['emailSent'] is True

        entry = session.query(AuditLog).filter_by(action=AuditLog.SUBMITTED).one()
        assert entry.user_agent == 'pytest-browser'

        submission = client.get(f'/forms/{token}/submission').get_json()
        assert submission['submissionId'] == body['submissionId']
        assert submission['submittedData'] == VALID_ANSWERS

    def test_submit_validation_422(self, client, token):
        response = client.post(f'/forms/{token}/submit', json={'email': 'ada@example.com'})
        body = response.get_json()
        assert response.status_code == 422
        assert body['error'] == 'Validation failed: name: name is required'
        assert body['errors'][0]['path'] == 'name'

    def test_double_submit_400(self, client, token):
        client.post(f'/forms/{token}/submit', json=VALID_ANSWERS)
        response = client.post(f'/forms/{token}/submit', json=VALID_ANSWERS)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Form has already been submitted'

    def test_submission_before_submit_404(self, client, token):
        assert client.get(f'/forms/{token}/submission').status_code == 404

    def test_unexpected_error_is_generic_500(self, client, token):
        with patch.object(FormLifecycleController, 'open_form', side_effect=RuntimeError('db exploded')):
            response = client.get(f'/forms/{token}')
        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'error': 'Internal server error'}


class TestTemplateRoutes:

    def test_list_and_get(self, owner_client, template):
        listed = owner_client.get('/templates').get_json()['templates']
        assert [t['slug'] for t in listed] == ['contact-details']
        assert 'schema' not in listed[0]

        by_slug = owner_client.get('/templates/contact-details').get_json()['template']
        assert by_slug['schema']['required'] == ['name', 'email']

    def test_requires_login(self, client):
        assert client.get('/templates').status_code == 401

    def test_create_update_delete(self, owner_client):
        created = owner_client.post('/templates', json={
            'name': 'Employment History',
            'schema': {'properties': {'employer': {'type': 'string'}}, 'required': ['employer']},
        })
        assert created.status_code == 201
        template_id = created.get_json()['template']['id']

        updated = owner_client.put(f'/templates/{template_id}', json={'description': 'Last ten years'})
        assert updated.get_json()['template']['version'] == 2

        assert owner_client.delete(f'/templates/{template_id}').status_code == 200
        assert owner_client.get(f'/templates/{template_id}').status_code == 404

    def test_create_invalid_schema(self, owner_client):
        response = owner_client.post('/templates', json={
            'name': 'Broken',
            'schema': {'properties': {'code': {'type': 'string', 'pattern': '(['}}},
        })
        assert response.status_code == 400
        assert response.get_json()['error'].startswith('Invalid template')

    def test_create_duplicate(self, owner_client, template):
        response = owner_client.post('/templates', json={
            'name': 'Contact Details',
            'schema': {'properties': {'a': {'type': 'string'}}},
        })
        assert response.status_code == 409

    @pytest.mark.parametrize('name', [42, ['Intake'], '   ', None])
    def test_create_rejects_bad_name(self, owner_client, name):
        response = owner_client.post('/templates', json={
            'name': name,
            'schema': {'properties': {'a': {'type': 'string'}}},
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'name is required'

    @pytest.mark.parametrize('name', [42, ''])
    def test_update_rejects_bad_name(self, owner_client, template, name):
        response = owner_client.put(f'/templates/{template.id}', json={'name': name})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'name must be a non-empty string'

    def test_update_unknown_field(self, owner_client, template):
        response = owner_client.put(f'/templates/{template.id}', json={'slug': 'renamed'})
        assert response.status_code == 400


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['database'] == 'ok'
