"""
Reconciliation of submitted form values against a patient's stored profile.

Profiles and submissions are both plain dicts keyed by field definition
name. Nothing here touches the database.
"""
from app.services.form_validation import is_empty


def _present(value):
    return not is_empty(value)


def compute_profile_diff(fields, submitted, profile):
    """
    Lists fields whose submitted value differs from a non-empty profile value.

    A field is reported only when both sides hold a value; filling a blank
    profile entry or leaving a form field blank is not a difference. Returns
    ``None`` when nothing differs.
    """
    submitted = submitted or {}
    profile = profile or {}
    diffs = []
    seen = set()
    for field in fields:
        name = field.get('name')
        if name in seen:
            continue
        seen.add(name)
        current, new = profile.get(name), submitted.get(name)
        if _present(current) and _present(new) and current != new:
            diffs.append({
                'fieldName': name,
                'fieldLabel': field.get('label') or name,
                'currentValue': current,
                'submittedValue': new,
            })
    return diffs or None


def sync_fields(profile, submitted, field_names):
    """Copies the chosen submitted values onto the profile, overwriting per field."""
    merged = dict(profile or {})
    for name in field_names:
        if name in submitted:
            merged[name] = submitted[name]
    return merged


def merge_missing(profile, submitted):
    """Fills profile gaps from a submission without overwriting anything present."""
    merged = dict(profile or {})
    for name, value in (submitted or {}).items():
        if _present(value) and not _present(merged.get(name)):
            merged[name] = value
    return merged


def prefill_for_form(profile, field_names):
    profile = profile or {}
    return {name: profile[name] for name in field_names if _present(profile.get(name))}
