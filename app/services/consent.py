"""
Consent duration terms and consent status.

Timeline of a consent: ACTIVE until 30 days before expiry, then EXPIRING,
then GRACE for ``grace_period_days`` after expiry, then EXPIRED. WITHDRAWN
overrides all of these; a submission without consent is NEVER_GIVEN.
"""
import calendar
import math
from datetime import datetime, timedelta

DEFAULT_GRACE_PERIOD_DAYS = 30
EXPIRING_WARNING_DAYS = 30


class ConsentDurationError(ValueError):
    def __init__(self, minimum, maximum):
        super().__init__(f'Consent duration must be between {minimum} and {maximum} months')
        self.minimum = minimum
        self.maximum = maximum


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the end of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_consent_terms(template, requested_months=None, requested_auto_renew=None, consent_at=None):
    """
    Works out duration, expiry and auto-renewal for a consenting submission.

    Raises ``ConsentDurationError`` when an explicit duration falls outside the
    template's min/max bounds.
    """
    minimum = template.min_consent_duration
    maximum = template.max_consent_duration
    if requested_months is None:
        months = template.default_consent_duration
    else:
        if isinstance(requested_months, bool) or not isinstance(requested_months, int):
            raise ConsentDurationError(minimum, maximum)
        if requested_months < minimum or requested_months > maximum:
            raise ConsentDurationError(minimum, maximum)
        months = requested_months

    if template.allow_auto_renewal:
        auto_renew = template.allow_auto_renewal if requested_auto_renew is None else bool(requested_auto_renew)
    else:
        auto_renew = False

    consent_at = consent_at or datetime.utcnow()
    return {
        'consent_at': consent_at,
        'consent_duration_months': months,
        'consent_expires_at': add_months(consent_at, months),
        'auto_renew': auto_renew,
    }


def _status(status, accessible, message, days_remaining=None, expires_at=None,
            grace_ends_at=None, can_renew=False, urgency='none'):
    return {
        'status': status,
        'isAccessible': accessible,
        'message': message,
        'daysRemaining': days_remaining,
        'expiresAt': expires_at.isoformat() if expires_at else None,
        'gracePeriodEndsAt': grace_ends_at.isoformat() if grace_ends_at else None,
        'canRenew': can_renew,
        'renewalUrgency': urgency,
    }


def calculate_consent_status(consent_given, consent_at, expires_at, withdrawn_at=None,
                             grace_period_days=None, now=None):
    now = now or datetime.utcnow()
    grace_days = DEFAULT_GRACE_PERIOD_DAYS if grace_period_days is None else grace_period_days

    if not consent_given or not consent_at:
        return _status('NEVER_GIVEN', False, 'Consent has never been given')
    if withdrawn_at:
        return _status('WITHDRAWN', False, 'Consent has been withdrawn', expires_at=expires_at)
    if not expires_at:
        return _status('ACTIVE', True, 'Consent is active (no expiry set)')

    grace_ends_at = expires_at + timedelta(days=grace_days)
    days_until_expiry = math.ceil((expires_at - now).total_seconds() / 86400)
    days_until_grace_ends = math.ceil((grace_ends_at - now).total_seconds() / 86400)

    if now > grace_ends_at:
        return _status('EXPIRED', False, 'Consent has expired and grace period has ended',
                       days_until_expiry, expires_at, grace_ends_at, True, 'critical')
    if now > expires_at:
        return _status('GRACE', True, f'Consent expired, grace period ends in {days_until_grace_ends} days',
                       days_until_expiry, expires_at, grace_ends_at, True, 'critical')
    if days_until_expiry <= EXPIRING_WARNING_DAYS:
        if days_until_expiry <= 7:
            urgency = 'high'
        elif days_until_expiry <= 14:
            urgency = 'medium'
        else:
            urgency = 'low'
        return _status('EXPIRING', True, f'Consent expires in {days_until_expiry} days',
                       days_until_expiry, expires_at, grace_ends_at, True, urgency)
    return _status('ACTIVE', True, f"Consent is active until {expires_at.strftime('%d %b %Y')}",
                   days_until_expiry, expires_at, grace_ends_at, True)


def submission_consent_status(submission, now=None):
    template = submission.form_template
    return calculate_consent_status(
        submission.consent_given,
        submission.consent_at,
        submission.consent_expires_at,
        submission.consent_withdrawn_at,
        template.grace_period_days if template else None,
        now=now,
    )
