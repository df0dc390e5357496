"""
Typed variants of the per-field ``config`` and ``validation`` blobs.

Field definitions store these blobs as JSON. Writes go through
``validate_config`` / ``validate_rules`` which reject malformed input with a
``FieldConfigError``; reads go through ``parse_config`` which never raises and
falls back to an empty config so that legacy rows still render.
"""
import json
import re
from dataclasses import dataclass, field

FIELD_TYPES = (
    'text', 'email', 'phone', 'date', 'datetime', 'select', 'multiselect',
    'checkbox', 'radio', 'textarea', 'number', 'file', 'signature',
    'country', 'currency', 'address',
)

OPTION_FIELD_TYPES = ('select', 'multiselect', 'radio')

# Sub-field roles an address field links to, in display order
ADDRESS_ROLES = (
    'complexName', 'unitNumber', 'suburb', 'city', 'province', 'postalCode', 'country',
)

# How a client should render each field type
INPUT_KINDS = {
    'text': 'text',
    'email': 'email',
    'phone': 'tel',
    'date': 'date',
    'datetime': 'datetime-local',
    'select': 'select',
    'multiselect': 'multiselect',
    'checkbox': 'checkbox',
    'radio': 'radio',
    'textarea': 'textarea',
    'number': 'number',
    'file': 'file',
    'signature': 'signature',
    'country': 'country',
    'currency': 'currency',
    'address': 'address',
}

RULE_NUMBER_KEYS = ('minLength', 'maxLength', 'min', 'max')
RULE_KEYS = RULE_NUMBER_KEYS + ('pattern', 'message')


class FieldConfigError(ValueError):
    """Raised when a config or validation blob does not fit its field type."""


@dataclass
class SelectConfig:
    options: list = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    def to_json(self):
        return {**self.extra, 'options': list(self.options)}


@dataclass
class AddressConfig:
    linked_fields: dict = field(default_factory=dict)
    extra: dict = field(default_factory=dict)

    def to_json(self):
        data = dict(self.extra)
        if self.linked_fields:
            data['linkedFields'] = dict(self.linked_fields)
        return data


@dataclass
class GenericConfig:
    values: dict = field(default_factory=dict)

    def to_json(self):
        return dict(self.values)


def input_kind(field_type):
    return INPUT_KINDS.get(field_type, 'text')


def _load(raw):
    if raw is None or raw == '':
        return {}
    if isinstance(raw, (bytes, str)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise FieldConfigError('Config must be an object')
    return raw


def _check_options(options):
    if not isinstance(options, list):
        raise FieldConfigError('options must be a list')
    for option in options:
        if isinstance(option, str):
            continue
        if isinstance(option, dict) and isinstance(option.get('value'), str):
            continue
        raise FieldConfigError('Each option must be a string or an object with a string "value"')
    return options


def _check_linked_fields(linked):
    if not isinstance(linked, dict):
        raise FieldConfigError('linkedFields must be an object')
    for role, name in linked.items():
        if role not in ADDRESS_ROLES:
            raise FieldConfigError(f'Unknown address role: {role}')
        if not isinstance(name, str) or not name:
            raise FieldConfigError(f'linkedFields.{role} must be a field name')
    return linked


def validate_config(field_type, raw):
    """Strictly parses ``raw`` into the variant for ``field_type``."""
    try:
        data = _load(raw)
    except ValueError as e:
        if isinstance(e, FieldConfigError):
            raise
        raise FieldConfigError('Config is not valid JSON') from e

    if field_type in OPTION_FIELD_TYPES:
        extra = {k: v for k, v in data.items() if k != 'options'}
        return SelectConfig(options=_check_options(data.get('options', [])), extra=extra)
    if field_type == 'address':
        extra = {k: v for k, v in data.items() if k != 'linkedFields'}
        return AddressConfig(linked_fields=_check_linked_fields(data.get('linkedFields', {})), extra=extra)
    return GenericConfig(values=data)


def parse_config(field_type, raw):
    """Best-effort read of a stored blob; anything unreadable becomes an empty config."""
    try:
        return validate_config(field_type, raw)
    except FieldConfigError:
        return validate_config(field_type, None)


def config_json(field_type, raw):
    return parse_config(field_type, raw).to_json()


def validate_rules(raw):
    """Checks a ``validation`` blob and returns it as a plain dict (or None)."""
    if raw is None:
        return None
    try:
        rules = _load(raw)
    except ValueError as e:
        if isinstance(e, FieldConfigError):
            raise FieldConfigError('Validation rules must be an object') from e
        raise FieldConfigError('Validation rules are not valid JSON') from e

    unknown = [key for key in rules if key not in RULE_KEYS]
    if unknown:
        raise FieldConfigError(f'Unknown validation rule(s): {", ".join(sorted(unknown))}')
    for key in RULE_NUMBER_KEYS:
        value = rules.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise FieldConfigError(f'{key} must be a number')
    pattern = rules.get('pattern')
    if pattern is not None:
        if not isinstance(pattern, str):
            raise FieldConfigError('pattern must be a string')
        try:
            re.compile(pattern)
        except re.error as e:
            raise FieldConfigError(f'pattern is not a valid regular expression: {e}') from e
    return rules or None


def parse_rules(raw):
    try:
        return validate_rules(raw)
    except FieldConfigError:
        return None
