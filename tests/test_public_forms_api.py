"""
Tests for the public QR check-in endpoints and the patient follow-up flow.
"""
from app.extensions import db
from app.models.form_models import QRCode, Submission
from app.models.patient_profile_models import PatientProfile
from app.models.system_models import AuditLog

VALID_SUBMISSION = {
    'data': {'firstName': 'Thandi', 'lastName': 'Nkosi', 'email': 'thandi@example.test'},
    'consentGiven': True,
}


def _profile(user, data):
    profile = PatientProfile.for_user(user.id, create=True)
    profile.data = data
    db.session.commit()
    return profile


class TestGetPublicForm:
    """GET /api/public/forms/<shortCode>"""

    def test_unknown_code(self, client):
        response = client.get('/api/public/forms/nope1234')
        assert response.status_code == 404
        assert response.get_json()['code'] == 'QR_NOT_FOUND'

    def test_inactive_code(self, client, qr_code):
        qr_code.is_active = False
        db.session.commit()

        response = client.get(f'/api/public/forms/{qr_code.short_code}')

        assert response.status_code == 410
        assert response.get_json()['code'] == 'QR_INACTIVE'

    def test_inactive_form(self, client, qr_code, form):
        form.is_active = False
        db.session.commit()

        response = client.get(f'/api/public/forms/{qr_code.short_code}')

        assert response.status_code == 410
        assert response.get_json()['code'] == 'FORM_INACTIVE'

    def test_records_scan_and_returns_layout(self, client, qr_code):
        response = client.get(f'/api/public/forms/{qr_code.short_code}')

        body = response.get_json()
        assert response.status_code == 200
        assert body['isAuthenticated'] is False
        assert body['prefillData'] == {}
        assert body['flowState'] == 'form'
        assert body['organization']['name'] == 'Sunrise Family Practice'
        assert [s['name'] for s in body['form']['layout']] == ['Personal', 'Contact']
        assert db.session.get(QRCode, qr_code.id).scan_count == 1

    def test_prefill_for_signed_in_patient(self, client, qr_code, patient_user, patient_headers):
        _profile(patient_user, {'firstName': 'Thandi', 'idNumber': '9001015800087', 'email': ''})

        response = client.get(f'/api/public/forms/{qr_code.short_code}', headers=patient_headers)

        body = response.get_json()
        assert body['isAuthenticated'] is True
        assert body['prefillData'] == {'firstName': 'Thandi'}


class TestSubmitForm:
    """POST /api/public/forms/<shortCode>/submit"""

    def test_missing_required_and_consent(self, client, qr_code):
        response = client.post(f'/api/public/forms/{qr_code.short_code}/submit',
                               json={'data': {'lastName': 'Nkosi'}, 'consentGiven': False})

        body = response.get_json()
        assert response.status_code == 400
        assert body['code'] == 'VALIDATION_ERROR'
        assert body['errors'] == {
            'firstName': 'First Name is required',
            '_consent': 'You must agree to the consent clause',
        }
        assert body['missingFields'] == ['First Name']
        assert Submission.query.count() == 0

    def test_anonymous_submission(self, client, qr_code, form):
        response = client.post(f'/api/public/forms/{qr_code.short_code}/submit', json=VALID_SUBMISSION)

        body = response.get_json()
        assert response.status_code == 201
        assert body['anonymousToken']
        assert body['promptRegistration'] is True
        assert body['flowState'] == 'registration-prompt'

        submission = db.session.get(Submission, body['submission']['id'])
        assert submission.user_id is None
        assert submission.form_version == form.version
        assert submission.data == VALID_SUBMISSION['data']
        assert 'Thandi' not in submission.data_encrypted
        assert submission.consent_duration_months == 12
        assert submission.auto_renew is True

    def test_consent_duration_out_of_range(self, client, qr_code):
        response = client.post(f'/api/public/forms/{qr_code.short_code}/submit',
                               json={**VALID_SUBMISSION, 'consentDurationMonths': 120})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_CONSENT_DURATION'

    def test_authenticated_submission_reports_profile_diff(self, client, qr_code, patient_user, patient_headers):
        _profile(patient_user, {'firstName': 'Thandiwe', 'lastName': 'Nkosi'})

        response = client.post(f'/api/public/forms/{qr_code.short_code}/submit',
                               json=VALID_SUBMISSION, headers=patient_headers)

        body = response.get_json()
        assert response.status_code == 201
        assert 'anonymousToken' not in body
        assert body['promptProfileUpdate'] is True
        assert body['flowState'] == 'profile-sync'
        assert body['profileDiff'] == [{
            'fieldName': 'firstName',
            'fieldLabel': 'First Name',
            'currentValue': 'Thandiwe',
            'submittedValue': 'Thandi',
        }]

    def test_submission_is_audited_with_forwarded_ip(self, client, qr_code):
        client.post(f'/api/public/forms/{qr_code.short_code}/submit', json=VALID_SUBMISSION,
                    headers={'X-Forwarded-For': '41.0.0.7, 10.0.0.1'})

        log = AuditLog.query.filter_by(action='SUBMIT_FORM').one()
        assert log.ip_address == '41.0.0.7'
        assert log.user_id is None
        assert log.event_metadata['consentGiven'] is True


class TestPatientFollowUp:
    """Profile sync and linking of anonymous submissions."""

    def _submit(self, client, qr_code, headers=None):
        response = client.post(f'/api/public/forms/{qr_code.short_code}/submit',
                               json=VALID_SUBMISSION, headers=headers or {})
        return response.get_json()

    def test_link_anonymous_submission(self, client, qr_code, patient_user, patient_headers):
        _profile(patient_user, {'firstName': 'Thandiwe'})
        submitted = self._submit(client, qr_code)

        response = client.post('/api/patient/link-submission', headers=patient_headers,
                               json={'anonymousToken': submitted['anonymousToken']})

        body = response.get_json()
        assert response.status_code == 200
        assert body['linked']['submissionCount'] == 1
        assert body['linked']['newFieldsSynced'] == 2
        assert body['profile']['data'] == {
            'firstName': 'Thandiwe', 'lastName': 'Nkosi', 'email': 'thandi@example.test',
        }
        submission = db.session.get(Submission, submitted['submission']['id'])
        assert submission.user_id == patient_user.id
        assert submission.anonymous_token is None

    def test_link_with_unknown_token(self, client, patient_headers):
        response = client.post('/api/patient/link-submission', headers=patient_headers,
                               json={'anonymousToken': 'missing'})
        assert response.status_code == 404

    def test_sync_selected_fields(self, client, qr_code, patient_user, patient_headers):
        _profile(patient_user, {'firstName': 'Thandiwe', 'lastName': 'Dlamini'})
        submitted = self._submit(client, qr_code, patient_headers)

        response = client.post('/api/patient/profile/sync', headers=patient_headers, json={
            'submissionId': submitted['submission']['id'], 'fields': ['lastName'],
        })

        assert response.status_code == 200
        assert response.get_json()['profile']['data'] == {'firstName': 'Thandiwe', 'lastName': 'Nkosi'}

    def test_sync_rejects_other_users_submission(self, client, qr_code, patient_headers, make_user, auth_headers):
        other = make_user('sipho@example.test')
        submitted = self._submit(client, qr_code, auth_headers(other))

        response = client.post('/api/patient/profile/sync', headers=patient_headers, json={
            'submissionId': submitted['submission']['id'], 'fields': ['lastName'],
        })

        assert response.status_code == 403

    def test_list_and_withdraw_consent(self, client, qr_code, patient_headers):
        submitted = self._submit(client, qr_code, patient_headers)
        submission_id = submitted['submission']['id']

        listed = client.get('/api/patient/submissions', headers=patient_headers).get_json()['submissions']
        assert listed[0]['consentStatus']['status'] == 'ACTIVE'
        assert listed[0]['formTitle'] == 'New Patient Intake'

        response = client.post(f'/api/patient/submissions/{submission_id}/withdraw-consent',
                               headers=patient_headers)
        assert response.get_json()['consentStatus']['status'] == 'WITHDRAWN'

        again = client.post(f'/api/patient/submissions/{submission_id}/withdraw-consent',
                            headers=patient_headers)
        assert again.status_code == 400
