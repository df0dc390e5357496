"""
Expansion of compound address fields into linked sub-fields.

Creating a field definition of type ``address`` also creates seven sibling
definitions in the same category (building, unit, suburb, city, province,
postal code, country) and records their names under ``config.linkedFields``
on the parent, keyed by role.
"""
import re
from collections import namedtuple
from app.extensions import db
from app.models.field_models import FieldDefinition
from app.services.field_config import validate_config

AddressPart = namedtuple('AddressPart', 'role suffix label field_type description')

ADDRESS_PARTS = (
    AddressPart('complexName', 'ComplexName', 'Building/Complex', 'text', 'Building or complex name'),
    AddressPart('unitNumber', 'UnitNumber', 'Unit/Suite', 'text', 'Unit, suite or apartment number'),
    AddressPart('suburb', 'Suburb', 'Suburb', 'text', 'Suburb or neighbourhood'),
    AddressPart('city', 'City', 'City', 'text', 'City or town'),
    AddressPart('province', 'Province', 'Province', 'text', 'Province or state'),
    AddressPart('postalCode', 'PostalCode', 'Postal Code', 'text', 'Postal or ZIP code'),
    AddressPart('country', 'Country', 'Country', 'country', 'Country'),
)

# Parent plus its linked parts; existing fields shift by this much to make room
ADDRESS_BLOCK_SIZE = len(ADDRESS_PARTS) + 1

LinkedFieldPlan = namedtuple('LinkedFieldPlan', 'role name label field_type description offset')

_NAME_SUFFIX = re.compile(r'(StreetAddress|Address)$', re.IGNORECASE)
_LABEL_SUFFIX = re.compile(r'\s*(Street\s+Address|Address)\s*$', re.IGNORECASE)


def name_prefix(name):
    return _NAME_SUFFIX.sub('', name or '')


def label_prefix(label):
    return _LABEL_SUFFIX.sub('', (label or '').strip()).strip()


def linked_name(prefix, suffix):
    if not prefix:
        return suffix[0].lower() + suffix[1:]
    return prefix + suffix


def linked_label(prefix, part_label):
    return f'{prefix} {part_label}' if prefix else part_label


def plan_linked_fields(parent_name, parent_label):
    """Names, labels and sort offsets of the sub-fields for an address parent."""
    n_prefix = name_prefix(parent_name)
    l_prefix = label_prefix(parent_label)
    return [
        LinkedFieldPlan(
            role=part.role,
            name=linked_name(n_prefix, part.suffix),
            label=linked_label(l_prefix, part.label),
            field_type=part.field_type,
            description=f'{part.description} for {parent_label}' if parent_label else part.description,
            offset=index,
        )
        for index, part in enumerate(ADDRESS_PARTS, start=1)
    ]


def expand_address_field(parent, created_by=None):
    """
    Creates the linked sub-fields for ``parent`` and stores the role map on it.

    A sub-field whose name is already taken is not recreated; the map still
    points at the existing definition. Returns ``(created, skipped)`` lists of
    field definitions. The caller owns the transaction.
    """
    created, skipped = [], []
    linked = {}
    base_order = parent.sort_order or 0

    for plan in plan_linked_fields(parent.name, parent.label):
        linked[plan.role] = plan.name
        existing = FieldDefinition.query.filter_by(name=plan.name).first()
        if existing:
            skipped.append(existing)
            continue
        child = FieldDefinition(
            name=plan.name,
            label=plan.label,
            description=plan.description,
            field_type=plan.field_type,
            category=parent.category,
            sort_order=base_order + plan.offset,
            is_active=True,
            special_personal_info=parent.special_personal_info or False,
            requires_explicit_consent=parent.requires_explicit_consent or False,
            created_by=created_by,
        )
        db.session.add(child)
        created.append(child)

    current = validate_config('address', parent.config)
    current.linked_fields = linked
    parent.config = current.to_json()
    db.session.flush()
    return created, skipped
