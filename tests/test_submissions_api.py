"""
Tests for the provider's view of collected submissions.
"""
from datetime import datetime, timedelta

from app.extensions import db
from app.models.form_models import FormTemplate, Submission
from app.models.organization_models import Organization
from app.models.system_models import AuditLog


def _submission(form, data=None, user=None, consent=True, withdrawn=False, created_at=None):
    now = datetime.utcnow()
    submission = Submission(
        form_template_id=form.id,
        organization_id=form.organization_id,
        user_id=user.id if user else None,
        form_version=form.version,
        consent_given=consent,
        consent_at=now if consent else None,
        consent_expires_at=now + timedelta(days=365) if consent else None,
        consent_withdrawn_at=now if withdrawn else None,
        created_at=created_at or now,
    )
    submission.data = data if data is not None else {
        'firstName': 'Thandi', 'lastName': 'Nkosi', 'email': 'thandi@example.test',
    }
    db.session.add(submission)
    db.session.commit()
    return submission


def _other_form():
    org = Organization(name='Harbour Dental', slug='harbour-dental', status='approved')
    db.session.add(org)
    db.session.flush()
    template = FormTemplate(organization_id=org.id, title='Dental History')
    db.session.add(template)
    db.session.commit()
    return template


class TestListSubmissions:
    """GET /api/provider/submissions"""

    def test_only_own_organization(self, client, provider_headers, form):
        mine = _submission(form)
        _submission(_other_form())

        response = client.get('/api/provider/submissions', headers=provider_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert [s['id'] for s in body['submissions']] == [mine.id]
        item = body['submissions'][0]
        assert item['formTitle'] == 'New Patient Intake'
        assert item['patientName'] == 'Thandi Nkosi'
        assert item['patientEmail'] == 'thandi@example.test'
        assert item['isAnonymous'] is True
        assert item['consentStatus']['status'] == 'ACTIVE'
        assert body['pagination']['total'] == 1
        assert body['forms'] == [{'id': form.id, 'title': 'New Patient Intake'}]

    def test_filters(self, client, provider_headers, form, patient_user, organization):
        other = FormTemplate(organization_id=organization.id, title='Walk-in')
        db.session.add(other)
        db.session.commit()
        registered = _submission(form, user=patient_user)
        anonymous = _submission(form, created_at=datetime(2024, 5, 1, 9, 30))
        elsewhere = _submission(other)

        def ids(query):
            body = client.get(f'/api/provider/submissions?{query}', headers=provider_headers).get_json()
            return {s['id'] for s in body['submissions']}

        assert ids(f'formId={other.id}') == {elsewhere.id}
        assert ids('patientType=registered') == {registered.id}
        assert ids('dateFrom=2024-05-01&dateTo=2024-05-01') == {anonymous.id}

    def test_consent_filter_and_summary(self, client, provider_headers, form):
        active = _submission(form)
        withdrawn = _submission(form, withdrawn=True)

        body = client.get('/api/provider/submissions?consentStatus=withdrawn', headers=provider_headers).get_json()

        assert [s['id'] for s in body['submissions']] == [withdrawn.id]
        assert body['submissions'][0]['patientName'] is None
        assert body['consentSummary']['active'] == 1
        assert body['consentSummary']['withdrawn'] == 1
        assert active.id not in {s['id'] for s in body['submissions']}

    def test_rejects_bad_filters(self, client, provider_headers):
        assert client.get('/api/provider/submissions?formId=abc', headers=provider_headers).status_code == 400
        assert client.get('/api/provider/submissions?dateFrom=May', headers=provider_headers).status_code == 400
        assert client.get('/api/provider/submissions?consentStatus=x', headers=provider_headers).status_code == 400

    def test_requires_membership(self, client, patient_headers):
        assert client.get('/api/provider/submissions', headers=patient_headers).status_code == 404


class TestGetSubmission:
    """GET /api/provider/submissions/<id>"""

    def test_answers_by_section(self, client, provider_headers, form):
        submission = _submission(form)

        response = client.get(f'/api/provider/submissions/{submission.id}', headers=provider_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert body['rawData']['firstName'] == 'Thandi'
        assert [f['name'] for f in body['sections']['Personal']] == ['firstName', 'lastName']
        assert body['sections']['Contact'][0]['value'] == 'thandi@example.test'
        assert body['submission']['consentStatus']['isAccessible'] is True
        assert body['submission']['pdfSigning']['isSigned'] is False

    def test_view_is_audited(self, client, provider_headers, provider_user, form, organization):
        submission = _submission(form)

        client.get(f'/api/provider/submissions/{submission.id}', headers=provider_headers)

        log = AuditLog.query.filter_by(action='VIEW_SUBMISSION').one()
        assert log.user_id == provider_user.id
        assert log.organization_id == organization.id
        assert log.resource_id == str(submission.id)
        assert log.event_metadata['formTitle'] == 'New Patient Intake'

    def test_withdrawn_consent_hides_answers(self, client, provider_headers, form):
        submission = _submission(form, withdrawn=True)

        body = client.get(f'/api/provider/submissions/{submission.id}', headers=provider_headers).get_json()

        assert body['rawData'] is None
        assert all(f['value'] is None for f in body['fields'])
        assert body['submission']['consentStatus']['status'] == 'WITHDRAWN'

    def test_submission_without_consent_clause_is_visible(self, client, provider_headers, form):
        submission = _submission(form, consent=False)

        body = client.get(f'/api/provider/submissions/{submission.id}', headers=provider_headers).get_json()

        assert body['rawData']['lastName'] == 'Nkosi'

    def test_other_organization_forbidden(self, client, provider_headers, form):
        submission = _submission(_other_form())

        response = client.get(f'/api/provider/submissions/{submission.id}', headers=provider_headers)

        assert response.status_code == 403

    def test_missing(self, client, provider_headers):
        assert client.get('/api/provider/submissions/999', headers=provider_headers).status_code == 404
