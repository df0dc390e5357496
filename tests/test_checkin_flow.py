import pytest

from app.services import checkin_flow
from app.services.checkin_flow import CheckinFlow, InvalidTransition


class TestAfterSubmit:

    @pytest.mark.parametrize('signature, authenticated, diff, expected', [
        (True, True, True, checkin_flow.SIGNING),
        (False, False, False, checkin_flow.REGISTRATION_PROMPT),
        (False, True, True, checkin_flow.PROFILE_SYNC),
        (False, True, False, checkin_flow.SUBMITTED),
    ])
    def test_next_state(self, signature, authenticated, diff, expected):
        assert checkin_flow.after_submit(signature, authenticated, diff) == expected


class TestCheckinFlow:

    def test_anonymous_signing_path(self):
        flow = CheckinFlow().loaded().submitted(True, False, False).signed(False, False).finish()

        assert flow.history == ['loading', 'form', 'signing', 'registration-prompt', 'submitted']
        assert flow.is_terminal

    def test_load_failure_is_terminal(self):
        flow = CheckinFlow().failed()
        assert flow.state == checkin_flow.ERROR
        assert flow.is_terminal

    def test_invalid_transition(self):
        flow = CheckinFlow()
        with pytest.raises(InvalidTransition):
            flow.finish()
        assert flow.state == checkin_flow.LOADING

    def test_unknown_state(self):
        with pytest.raises(ValueError):
            CheckinFlow('paused')
