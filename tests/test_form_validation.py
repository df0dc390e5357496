from app.services.form_validation import CONSENT_ERROR_KEY, missing_labels, validate_submission

FIELDS = [
    {'name': 'firstName', 'label': 'First Name', 'isRequired': True},
    {'name': 'lastName', 'label': 'Surname', 'isRequired': True},
    {'name': 'email', 'label': 'Email', 'isRequired': False},
]


class TestValidateSubmission:

    def test_valid_submission(self):
        errors = validate_submission(FIELDS, {'firstName': 'Thandi', 'lastName': 'Nkosi'})
        assert errors == {}

    def test_missing_and_blank_required_values(self):
        errors = validate_submission(FIELDS, {'firstName': '', 'email': 'x@y.z'})

        assert errors == {
            'firstName': 'First Name is required',
            'lastName': 'Surname is required',
        }

    def test_falsy_but_present_values_count(self):
        fields = [{'name': 'children', 'label': 'Children', 'isRequired': True},
                  {'name': 'smoker', 'label': 'Smoker', 'isRequired': True}]
        assert validate_submission(fields, {'children': 0, 'smoker': False}) == {}

    def test_consent_required_when_clause_present(self):
        data = {'firstName': 'A', 'lastName': 'B'}

        assert validate_submission(FIELDS, data, 'I agree', False) == {
            CONSENT_ERROR_KEY: 'You must agree to the consent clause',
        }
        assert validate_submission(FIELDS, data, 'I agree', True) == {}
        assert validate_submission(FIELDS, data, None, False) == {}

    def test_consent_must_be_exactly_true(self):
        errors = validate_submission(FIELDS, {'firstName': 'A', 'lastName': 'B'}, 'I agree', 'yes')
        assert CONSENT_ERROR_KEY in errors

    def test_field_and_consent_errors_together(self):
        errors = validate_submission(FIELDS, {'lastName': 'B'}, 'I agree', False)
        assert set(errors) == {'firstName', CONSENT_ERROR_KEY}

    def test_missing_labels_skips_consent(self):
        errors = validate_submission(FIELDS, {}, 'I agree', False)
        assert missing_labels(FIELDS, errors) == ['First Name', 'Surname']
