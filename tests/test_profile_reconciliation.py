from app.services.profile_reconciliation import compute_profile_diff, merge_missing, prefill_for_form, sync_fields

FIELDS = [
    {'name': 'firstName', 'label': 'First Name'},
    {'name': 'phoneNumber', 'label': 'Phone'},
    {'name': 'city', 'label': 'City'},
]


class TestComputeProfileDiff:

    def test_reports_changed_values_only(self):
        profile = {'firstName': 'Thandi', 'phoneNumber': '0820000000', 'city': 'Durban'}
        submitted = {'firstName': 'Thandi', 'phoneNumber': '0831111111', 'city': 'Durban'}

        diff = compute_profile_diff(FIELDS, submitted, profile)

        assert diff == [{
            'fieldName': 'phoneNumber',
            'fieldLabel': 'Phone',
            'currentValue': '0820000000',
            'submittedValue': '0831111111',
        }]

    def test_blank_on_either_side_is_not_a_difference(self):
        profile = {'firstName': 'Thandi', 'city': ''}
        submitted = {'firstName': '', 'city': 'Durban', 'phoneNumber': '083'}

        assert compute_profile_diff(FIELDS, submitted, profile) is None

    def test_no_profile(self):
        assert compute_profile_diff(FIELDS, {'firstName': 'A'}, None) is None


class TestProfileUpdates:

    def test_sync_overwrites_selected_fields(self):
        profile = {'firstName': 'Thandi', 'city': 'Durban'}
        submitted = {'firstName': 'Thandiwe', 'city': 'Cape Town', 'phoneNumber': '083'}

        merged = sync_fields(profile, submitted, ['firstName', 'phoneNumber', 'unknown'])

        assert merged == {'firstName': 'Thandiwe', 'city': 'Durban', 'phoneNumber': '083'}
        assert profile == {'firstName': 'Thandi', 'city': 'Durban'}

    def test_merge_missing_never_overwrites(self):
        profile = {'firstName': 'Thandi', 'city': ''}
        submitted = {'firstName': 'Other', 'city': 'Durban', 'phoneNumber': None}

        assert merge_missing(profile, submitted) == {'firstName': 'Thandi', 'city': 'Durban'}

    def test_prefill_only_present_values_for_form_fields(self):
        profile = {'firstName': 'Thandi', 'city': '', 'idNumber': '900101'}

        assert prefill_for_form(profile, ['firstName', 'city', 'phoneNumber']) == {'firstName': 'Thandi'}
