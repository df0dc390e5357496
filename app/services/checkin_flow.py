"""Page-level states a patient moves through when checking in via a QR code."""

LOADING = 'loading'
FORM = 'form'
SIGNING = 'signing'
REGISTRATION_PROMPT = 'registration-prompt'
PROFILE_SYNC = 'profile-sync'
SUBMITTED = 'submitted'
ERROR = 'error'

TRANSITIONS = {
    LOADING: {FORM, ERROR},
    FORM: {SIGNING, REGISTRATION_PROMPT, PROFILE_SYNC, SUBMITTED},
    SIGNING: {REGISTRATION_PROMPT, PROFILE_SYNC, SUBMITTED},
    REGISTRATION_PROMPT: {SUBMITTED},
    PROFILE_SYNC: {SUBMITTED},
    SUBMITTED: set(),
    ERROR: set(),
}


class InvalidTransition(Exception):
    def __init__(self, current, target):
        super().__init__(f'Cannot move from {current} to {target}')
        self.current = current
        self.target = target


def after_submit(requires_signature, is_authenticated, has_profile_diff):
    """The state the patient lands in once the form itself has been accepted."""
    if requires_signature:
        return SIGNING
    return after_signing(is_authenticated, has_profile_diff)


def after_signing(is_authenticated, has_profile_diff):
    if not is_authenticated:
        return REGISTRATION_PROMPT
    if has_profile_diff:
        return PROFILE_SYNC
    return SUBMITTED


class CheckinFlow:
    def __init__(self, state=LOADING):
        if state not in TRANSITIONS:
            raise ValueError(f'Unknown check-in state: {state}')
        self.state = state
        self.history = [state]

    def can_move(self, target):
        return target in TRANSITIONS[self.state]

    def move(self, target):
        if not self.can_move(target):
            raise InvalidTransition(self.state, target)
        self.state = target
        self.history.append(target)
        return self

    def loaded(self):
        return self.move(FORM)

    def failed(self):
        return self.move(ERROR)

    def submitted(self, requires_signature, is_authenticated, has_profile_diff):
        return self.move(after_submit(requires_signature, is_authenticated, has_profile_diff))

    def signed(self, is_authenticated, has_profile_diff):
        return self.move(after_signing(is_authenticated, has_profile_diff))

    def finish(self):
        return self.move(SUBMITTED)

    @property
    def is_terminal(self):
        return not TRANSITIONS[self.state]
