import pytest

from app.services.field_config import (
    AddressConfig, FieldConfigError, GenericConfig, SelectConfig, parse_config, validate_config, validate_rules,
)


class TestValidateConfig:

    def test_select_options(self):
        config = validate_config('select', {'options': ['a', {'value': 'b', 'label': 'B'}], 'placeholder': 'Pick'})

        assert isinstance(config, SelectConfig)
        assert config.to_json() == {'placeholder': 'Pick', 'options': ['a', {'value': 'b', 'label': 'B'}]}

    def test_select_rejects_bad_options(self):
        with pytest.raises(FieldConfigError):
            validate_config('radio', {'options': [1, 2]})

    def test_address_linked_fields(self):
        config = validate_config('address', '{"linkedFields": {"city": "homeCity"}}')

        assert isinstance(config, AddressConfig)
        assert config.linked_fields == {'city': 'homeCity'}

    def test_address_rejects_unknown_role(self):
        with pytest.raises(FieldConfigError):
            validate_config('address', {'linkedFields': {'planet': 'homePlanet'}})

    def test_generic_passthrough(self):
        config = validate_config('text', {'placeholder': 'Name'})
        assert isinstance(config, GenericConfig)
        assert config.to_json() == {'placeholder': 'Name'}

    @pytest.mark.parametrize('raw', ['{not json', '[1, 2]'])
    def test_rejects_malformed(self, raw):
        with pytest.raises(FieldConfigError):
            validate_config('text', raw)

    def test_parse_config_is_lenient(self):
        assert parse_config('select', '{broken').to_json() == {'options': []}
        assert parse_config('text', None).to_json() == {}


class TestValidateRules:

    def test_accepts_known_rules(self):
        rules = {'minLength': 2, 'maxLength': 50, 'pattern': '^[A-Z]', 'message': 'Bad'}
        assert validate_rules(rules) == rules
        assert validate_rules(None) is None

    def test_unknown_rule(self):
        with pytest.raises(FieldConfigError):
            validate_rules({'maxWords': 3})

    def test_invalid_pattern(self):
        with pytest.raises(FieldConfigError):
            validate_rules({'pattern': '('})

    def test_non_numeric_bound(self):
        with pytest.raises(FieldConfigError):
            validate_rules({'min': '1'})
