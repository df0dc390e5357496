"""Required-field and consent checks applied before a submission is stored."""

CONSENT_ERROR_KEY = '_consent'
CONSENT_REQUIRED_MESSAGE = 'You must agree to the consent clause'


def is_empty(value):
    return value is None or value == ''


def validate_submission(fields, data, consent_clause=None, consent_given=False):
    """
    Returns an error map keyed by field name (plus ``_consent``); empty means valid.

    ``fields`` are serialized form fields carrying ``name``, ``label`` and
    ``isRequired``. Validation is all-or-nothing: callers must not store
    anything when the map is non-empty.
    """
    data = data or {}
    errors = {}
    for field in fields:
        if not field.get('isRequired'):
            continue
        name = field.get('name')
        if is_empty(data.get(name)):
            errors[name] = f"{field.get('label') or name} is required"

    if consent_clause is not None and consent_given is not True:
        errors[CONSENT_ERROR_KEY] = CONSENT_REQUIRED_MESSAGE
    return errors


def missing_labels(fields, errors):
    by_name = {f.get('name'): f.get('label') or f.get('name') for f in fields}
    return [by_name[name] for name in errors if name in by_name]
