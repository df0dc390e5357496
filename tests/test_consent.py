"""
Tests for consent duration terms and the consent status timeline.
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app.services.consent import (
    ConsentDurationError, add_months, calculate_consent_status, resolve_consent_terms,
)


def _template(**overrides):
    values = dict(default_consent_duration=12, min_consent_duration=3, max_consent_duration=60,
                  allow_auto_renewal=True, grace_period_days=30)
    values.update(overrides)
    return SimpleNamespace(**values)


class TestAddMonths:

    def test_simple(self):
        assert add_months(datetime(2024, 3, 15, 10, 30), 12) == datetime(2025, 3, 15, 10, 30)

    def test_clamps_to_month_end(self):
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert add_months(datetime(2023, 8, 31), 6) == datetime(2024, 2, 29)

    def test_crosses_year(self):
        assert add_months(datetime(2024, 11, 1), 3) == datetime(2025, 2, 1)


class TestResolveConsentTerms:

    def test_defaults(self):
        at = datetime(2024, 1, 10)
        terms = resolve_consent_terms(_template(), consent_at=at)

        assert terms['consent_duration_months'] == 12
        assert terms['consent_expires_at'] == datetime(2025, 1, 10)
        assert terms['auto_renew'] is True

    def test_requested_duration_within_bounds(self):
        terms = resolve_consent_terms(_template(), 6, False, consent_at=datetime(2024, 1, 10))

        assert terms['consent_duration_months'] == 6
        assert terms['consent_expires_at'] == datetime(2024, 7, 10)
        assert terms['auto_renew'] is False

    @pytest.mark.parametrize('months', [2, 61, 'twelve', True])
    def test_out_of_bounds_duration(self, months):
        with pytest.raises(ConsentDurationError) as exc:
            resolve_consent_terms(_template(), months)
        assert str(exc.value) == 'Consent duration must be between 3 and 60 months'

    def test_auto_renew_forced_off_when_not_allowed(self):
        terms = resolve_consent_terms(_template(allow_auto_renewal=False), None, True)
        assert terms['auto_renew'] is False


class TestConsentStatus:
    now = datetime(2024, 6, 1, 12, 0)

    def test_never_given(self):
        assert calculate_consent_status(False, None, None, now=self.now)['status'] == 'NEVER_GIVEN'

    def test_withdrawn_overrides_everything(self):
        status = calculate_consent_status(True, self.now - timedelta(days=5), self.now + timedelta(days=300),
                                          withdrawn_at=self.now, now=self.now)
        assert status['status'] == 'WITHDRAWN'
        assert status['isAccessible'] is False

    def test_active(self):
        status = calculate_consent_status(True, self.now, self.now + timedelta(days=200), now=self.now)
        assert status['status'] == 'ACTIVE'
        assert status['daysRemaining'] == 200
        assert status['renewalUrgency'] == 'none'

    @pytest.mark.parametrize('days, urgency', [(30, 'low'), (14, 'medium'), (7, 'high')])
    def test_expiring_urgency(self, days, urgency):
        status = calculate_consent_status(True, self.now, self.now + timedelta(days=days), now=self.now)
        assert status['status'] == 'EXPIRING'
        assert status['renewalUrgency'] == urgency

    def test_grace_then_expired(self):
        expires = self.now - timedelta(days=10)
        grace = calculate_consent_status(True, expires - timedelta(days=365), expires, now=self.now)
        assert grace['status'] == 'GRACE'
        assert grace['isAccessible'] is True

        expired = calculate_consent_status(True, expires - timedelta(days=365), expires,
                                           grace_period_days=5, now=self.now)
        assert expired['status'] == 'EXPIRED'
        assert expired['isAccessible'] is False
