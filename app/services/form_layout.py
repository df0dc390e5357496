"""
Rebuilds the sectioned, grouped layout of a form template from stored data.

The input is a list of serialized form fields (``FormField.to_dict()``
shape) and the template's section names. The output is a JSON-friendly list
of sections, each with an ordered list of items. An item is either a single
field or an address group holding its root field followed by the fields
linked to it. Every input field appears exactly once in the output.
"""
import re
from app.services.field_config import input_kind

DEFAULT_SECTION = 'Default'
GRID_COLUMNS = 8
LINKED_COLUMN_SPAN = 4

# Column spans the form builder assigns to freshly linked address parts
LINKED_SPAN_DEFAULTS = {
    'postalCode': 2,
    'country': 3,
    'province': 3,
}

_LABEL_NOISE = re.compile(r'\b(street|address)\b', re.IGNORECASE)


def normalize_span(value, default=GRID_COLUMNS):
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= GRID_COLUMNS:
        return GRID_COLUMNS
    return value


def default_linked_span(role):
    return LINKED_SPAN_DEFAULTS.get(role, LINKED_COLUMN_SPAN)


def section_of(field):
    return field.get('section') or DEFAULT_SECTION


def group_label(label):
    stripped = ' '.join(_LABEL_NOISE.sub(' ', label or '').split())
    return f'{stripped} Address' if stripped else 'Address'


def section_order(sections, fields):
    """Stored section list first, then any section only the fields mention."""
    ordered = [s for s in (sections or []) if s]
    for field in fields:
        name = section_of(field)
        if name not in ordered:
            ordered.append(name)
    return ordered or [DEFAULT_SECTION]


def _linked_names(field):
    definition = field.get('fieldDefinition') or {}
    config = definition.get('config') or {}
    linked = config.get('linkedFields') or {}
    return set(linked.values()) if isinstance(linked, dict) else set()


def _field_type(field):
    return field.get('fieldType') or (field.get('fieldDefinition') or {}).get('fieldType')


def _render_field(field, span):
    return {
        'type': 'field',
        'id': field.get('id'),
        'name': field.get('name'),
        'label': field.get('label'),
        'helpText': field.get('helpText'),
        'fieldType': _field_type(field),
        'inputKind': input_kind(_field_type(field)),
        'isRequired': bool(field.get('isRequired')),
        'columnSpan': span,
        'config': (field.get('fieldDefinition') or {}).get('config') or {},
    }


def _collect_linked(root, candidates, absorbed):
    group_id = root.get('groupId')
    if group_id:
        members = [f for f in candidates if f is not root and f.get('groupId') == group_id]
    else:
        names = _linked_names(root)
        members = [f for f in candidates if f is not root and f.get('name') in names]
    return [f for f in members if id(f) not in absorbed]


def layout_section(fields):
    """Items for one section's fields (already filtered to that section)."""
    ordered = sorted(fields, key=lambda f: f.get('sortOrder') or 0)
    absorbed = set()
    groups = {}

    for field in ordered:
        if _field_type(field) != 'address' or id(field) in absorbed:
            continue
        linked = _collect_linked(field, ordered, absorbed)
        absorbed.add(id(field))
        absorbed.update(id(f) for f in linked)
        groups[id(field)] = linked

    items = []
    for field in ordered:
        if id(field) in groups:
            linked = groups[id(field)]
            items.append({
                'type': 'group',
                'groupId': field.get('groupId') or f"address-{field.get('id')}",
                'label': group_label(field.get('label')),
                'columnSpan': GRID_COLUMNS,
                'fields': [_render_field(field, normalize_span(field.get('columnSpan')))] + [
                    _render_field(f, normalize_span(f.get('columnSpan'), LINKED_COLUMN_SPAN))
                    for f in linked
                ],
            })
        elif id(field) not in absorbed:
            items.append(_render_field(field, normalize_span(field.get('columnSpan'))))
    return items


def build_layout(sections, fields):
    """Full layout: a list of ``{"name", "items"}`` for every non-empty section."""
    by_section = {}
    for field in fields:
        by_section.setdefault(section_of(field), []).append(field)

    layout = []
    for name in section_order(sections, fields):
        section_fields = by_section.get(name)
        if section_fields:
            layout.append({'name': name, 'items': layout_section(section_fields)})
    return layout


def rendered_field_names(items):
    names = []
    for item in items:
        if item['type'] == 'group':
            names.extend(f['name'] for f in item['fields'])
        else:
            names.append(item['name'])
    return names
