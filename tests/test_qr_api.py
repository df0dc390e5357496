"""
Tests for QR code management on provider forms.
"""
from unittest import mock

from app.extensions import db
from app.models.form_models import FormTemplate, QRCode
from app.utils.qr_util import SHORT_CODE_ALPHABET, build_form_url, generate_short_code


class TestShortCodes:

    def test_generated_codes_use_url_safe_alphabet(self, app):
        code = generate_short_code()
        assert len(code) == 8
        assert set(code) <= set(SHORT_CODE_ALPHABET)

    def test_form_url(self, app):
        assert build_form_url('Abc123_-') == 'http://checkin.test/c/Abc123_-'


class TestQRCodeEndpoints:

    def test_create_returns_images(self, client, provider_headers, form):
        response = client.post(f'/api/provider/forms/{form.id}/qr', headers=provider_headers,
                               json={'label': 'Front desk'})

        assert response.status_code == 201
        qr = response.get_json()['qrCode']
        assert qr['label'] == 'Front desk'
        assert qr['url'] == f"http://checkin.test/c/{qr['shortCode']}"
        assert qr['qrDataUrl'].startswith('data:image/png;base64,')
        assert '<svg' in qr['qrSvg']

    def test_create_on_inactive_form(self, client, provider_headers, form):
        form.is_active = False
        db.session.commit()

        response = client.post(f'/api/provider/forms/{form.id}/qr', headers=provider_headers, json={})

        assert response.status_code == 400

    def test_gives_up_after_repeated_collisions(self, client, provider_headers, form, qr_code):
        with mock.patch('app.api.controllers.qr_controller.generate_short_code', return_value=qr_code.short_code):
            response = client.post(f'/api/provider/forms/{form.id}/qr', headers=provider_headers, json={})

        assert response.status_code == 500
        assert QRCode.query.count() == 1

    def test_update_requires_boolean(self, client, provider_headers, form, qr_code):
        response = client.patch(f'/api/provider/forms/{form.id}/qr/{qr_code.id}', headers=provider_headers,
                                json={'isActive': 'no'})
        assert response.status_code == 400

    def test_delete_deactivates(self, client, provider_headers, form, qr_code):
        response = client.delete(f'/api/provider/forms/{form.id}/qr/{qr_code.id}', headers=provider_headers)

        assert response.get_json()['deactivated'] is True
        assert db.session.get(QRCode, qr_code.id).is_active is False
        assert client.get(f'/api/public/forms/{qr_code.short_code}').status_code == 410

    def test_qr_from_another_form(self, client, provider_headers, form, qr_code, organization):
        other = FormTemplate(organization_id=organization.id, title='Second form')
        db.session.add(other)
        db.session.commit()

        response = client.get(f'/api/provider/forms/{other.id}/qr/{qr_code.id}', headers=provider_headers)

        assert response.status_code == 400

    def test_list(self, client, provider_headers, form, qr_code):
        response = client.get(f'/api/provider/forms/{form.id}/qr', headers=provider_headers)

        codes = response.get_json()['qrCodes']
        assert [c['shortCode'] for c in codes] == ['Abc123_-']
        assert codes[0]['formUrl'] == 'http://checkin.test/c/Abc123_-'
