# /app/utils/docuseal_client.py
import requests
from flask import current_app


class DocuSealError(Exception):
    """Raised when DocuSeal is unreachable, unconfigured or rejects a call."""


class DocuSealClient:
    """Thin wrapper over the self-hosted DocuSeal REST API."""

    TIMEOUT = 10

    @classmethod
    def _base_url(cls):
        return current_app.config.get('DOCUSEAL_URL', '').rstrip('/')

    @classmethod
    def get_headers(cls):
        api_key = current_app.config.get('DOCUSEAL_API_KEY')
        if not api_key:
            raise DocuSealError('DOCUSEAL_API_KEY is not configured')
        return {'X-Auth-Token': api_key, 'Content-Type': 'application/json'}

    @classmethod
    def get_template(cls, template_id):
        """Returns the template document, or None when DocuSeal does not know it."""
        url = f"{cls._base_url()}/api/templates/{template_id}"
        try:
            response = requests.get(url, headers=cls.get_headers(), timeout=cls.TIMEOUT)
        except requests.RequestException as e:
            current_app.logger.error(f"DocuSeal connection error: {e}")
            raise DocuSealError('DocuSeal is unreachable') from e

        if response.status_code == 404:
            return None
        if not response.ok:
            current_app.logger.error(f"DocuSeal template error {response.status_code}: {response.text}")
            raise DocuSealError(f'Failed to fetch DocuSeal template: {response.status_code}')
        return response.json()

    @classmethod
    def get_template_fields(cls, template_id):
        template = cls.get_template(template_id)
        if not template:
            return []
        return [
            {'name': f.get('name'), 'type': f.get('type'), 'required': bool(f.get('required'))}
            for f in template.get('fields') or []
        ]

    @classmethod
    def create_submission(cls, template_id, email, field_values, name=None, external_id=None,
                          completed_redirect_url=None):
        """Starts a signing session pre-filled with ``field_values``; returns id and embed URL."""
        submitter = {
            'email': email,
            'name': name,
            'external_id': external_id,
            'fields': [{'name': k, 'default_value': v} for k, v in field_values.items()],
        }
        payload = {'template_id': template_id, 'send_email': False, 'submitters': [submitter]}
        if completed_redirect_url:
            payload['completed_redirect_url'] = completed_redirect_url
            submitter['completed_redirect_url'] = completed_redirect_url

        url = f"{cls._base_url()}/api/submissions"
        try:
            response = requests.post(url, json=payload, headers=cls.get_headers(), timeout=cls.TIMEOUT)
        except requests.RequestException as e:
            current_app.logger.error(f"DocuSeal connection error: {e}")
            raise DocuSealError('DocuSeal is unreachable') from e

        if not response.ok:
            current_app.logger.error(f"DocuSeal submission error {response.status_code}: {response.text}")
            raise DocuSealError('Failed to create DocuSeal submission')

        data = response.json()
        first = data[0] if isinstance(data, list) and data else {}
        return {
            'submissionId': first.get('submission_id'),
            'embedUrl': first.get('embed_src'),
        }


def _stringify(value):
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, (list, tuple)):
        return ', '.join(_stringify(v) for v in value)
    return str(value)


def map_field_values(mappings, data):
    """
    Resolves DocuSeal field values from submission data.

    A mapping is either a form field name or an object
    ``{"type": "concatenate", "sourceFields": [...], "separator": " "}``.
    """
    values = {}
    for pdf_field, mapping in (mappings or {}).items():
        if isinstance(mapping, str):
            values[pdf_field] = _stringify(data.get(mapping))
        elif isinstance(mapping, dict) and mapping.get('type') == 'concatenate':
            separator = mapping.get('separator', ' ')
            parts = [_stringify(data.get(name)) for name in mapping.get('sourceFields') or []]
            values[pdf_field] = separator.join(p for p in parts if p)
    return values
