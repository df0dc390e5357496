"""
Tests for rebuilding the sectioned form layout from stored fields.
"""
from app.services.form_layout import (
    DEFAULT_SECTION, build_layout, default_linked_span, group_label, normalize_span,
    rendered_field_names, section_order,
)


def _field(fid, name, sort_order, field_type='text', section=None, group_id=None,
           column_span=None, linked=None, label=None):
    config = {'linkedFields': linked} if linked else {}
    return {
        'id': fid,
        'name': name,
        'label': label or name,
        'sortOrder': sort_order,
        'section': section,
        'groupId': group_id,
        'columnSpan': column_span,
        'fieldType': field_type,
        'isRequired': False,
        'fieldDefinition': {'fieldType': field_type, 'config': config},
    }


class TestHelpers:

    def test_normalize_span(self):
        assert normalize_span(None) == 8
        assert normalize_span(None, 4) == 4
        assert normalize_span(3) == 3
        assert normalize_span(0) == 8
        assert normalize_span(9) == 8
        assert normalize_span(True) == 8

    def test_default_linked_span(self):
        assert default_linked_span('postalCode') == 2
        assert default_linked_span('province') == 3
        assert default_linked_span('country') == 3
        assert default_linked_span('city') == 4

    def test_group_label(self):
        assert group_label('Residential Street Address') == 'Residential Address'
        assert group_label('Address') == 'Address'
        assert group_label('Work Address') == 'Work Address'

    def test_section_order_appends_unknown_sections(self):
        fields = [_field(1, 'a', 0, section='Extra'), _field(2, 'b', 1)]
        assert section_order(['Personal'], fields) == ['Personal', 'Extra', DEFAULT_SECTION]
        assert section_order(None, []) == [DEFAULT_SECTION]


class TestBuildLayout:
    """Grouping of address fields and section assignment."""

    def test_fields_without_section_go_to_default(self):
        layout = build_layout(None, [_field(1, 'firstName', 0), _field(2, 'lastName', 1)])

        assert [s['name'] for s in layout] == [DEFAULT_SECTION]
        assert [i['name'] for i in layout[0]['items']] == ['firstName', 'lastName']
        assert layout[0]['items'][0]['inputKind'] == 'text'

    def test_empty_sections_are_omitted(self):
        layout = build_layout(['Personal', 'Medical'], [_field(1, 'firstName', 0, section='Personal')])
        assert [s['name'] for s in layout] == ['Personal']

    def test_group_by_group_id(self):
        fields = [
            _field(1, 'homeAddress', 0, field_type='address', group_id='g-1', label='Home Street Address'),
            _field(2, 'homeCity', 1, group_id='g-1'),
            _field(3, 'homePostalCode', 2, group_id='g-1', column_span=2),
            _field(4, 'email', 3),
        ]

        items = build_layout(None, fields)[0]['items']

        assert [i['type'] for i in items] == ['group', 'field']
        group = items[0]
        assert group['groupId'] == 'g-1'
        assert group['label'] == 'Home Address'
        assert [f['name'] for f in group['fields']] == ['homeAddress', 'homeCity', 'homePostalCode']
        assert [f['columnSpan'] for f in group['fields']] == [8, 4, 2]

    def test_group_by_linked_names_without_group_id(self):
        linked = {'city': 'workCity', 'suburb': 'workSuburb'}
        fields = [
            _field(1, 'workAddress', 0, field_type='address', linked=linked),
            _field(2, 'phone', 1),
            _field(3, 'workSuburb', 2),
            _field(4, 'workCity', 3),
        ]

        items = build_layout(None, fields)[0]['items']

        assert items[0]['type'] == 'group'
        assert items[0]['groupId'] == 'address-1'
        assert [f['name'] for f in items[0]['fields']] == ['workAddress', 'workSuburb', 'workCity']
        assert items[1]['name'] == 'phone'

    def test_field_belongs_to_first_group_only(self):
        linked = {'city': 'sharedCity'}
        fields = [
            _field(1, 'homeAddress', 0, field_type='address', linked=linked),
            _field(2, 'postalAddress', 1, field_type='address', linked=linked),
            _field(3, 'sharedCity', 2),
        ]

        items = build_layout(None, fields)[0]['items']

        assert [f['name'] for f in items[0]['fields']] == ['homeAddress', 'sharedCity']
        assert [f['name'] for f in items[1]['fields']] == ['postalAddress']

    def test_every_field_rendered_once(self):
        fields = [
            _field(1, 'homeAddress', 0, field_type='address', group_id='g', section='Contact'),
            _field(2, 'homeCity', 1, group_id='g', section='Contact'),
            _field(3, 'firstName', 0, section='Personal'),
            _field(4, 'notes', 5),
        ]

        layout = build_layout(['Personal', 'Contact'], fields)
        names = [n for section in layout for n in rendered_field_names(section['items'])]

        assert sorted(names) == sorted(f['name'] for f in fields)
        assert [s['name'] for s in layout] == ['Personal', 'Contact', DEFAULT_SECTION]

    def test_linked_field_in_other_section_stays_there(self):
        fields = [
            _field(1, 'homeAddress', 0, field_type='address', group_id='g', section='A'),
            _field(2, 'homeCity', 1, group_id='g', section='B'),
        ]

        layout = build_layout(['A', 'B'], fields)

        assert layout[0]['items'][0]['type'] == 'group'
        assert [f['name'] for f in layout[0]['items'][0]['fields']] == ['homeAddress']
        assert layout[1]['items'][0]['name'] == 'homeCity'
