"""
Token service and submission identifier tests.
"""

from datetime import datetime, timedelta

import pytest

from services.submission_ids import (
    generate_submission_id,
    is_submission_id,
    submission_timestamp,
)
from services.token_service import (
    calculate_expiry,
    clamp_expiry_days,
    format_time_remaining,
    generate_form_token,
    is_expired,
    is_expiring_soon,
    time_until_expiry,
    validate_token_format,
)

NOW = datetime(2026, 3, 2, 12, 0, 0)


class TestTokens:

    def test_generated_token_shape(self):
        token = generate_form_token()
        assert len(token) == 43
        assert '=' not in token
        assert validate_token_format(token)

    def test_tokens_are_unique(self):
        tokens = {generate_form_token() for _ in range(200)}
        assert len(tokens) == 200

    @pytest.mark.parametrize('token', [None, '', 'short', 'a' * 15, 'has spaces in the token', 'abc/def+ghi=jklmnop', 'A' * 16 + '\n', 12345678901234567])
    def test_malformed_tokens_rejected(self, token):
        assert not validate_token_format(token)

    def test_minimum_length_accepted(self):
        assert validate_token_format('A' * 16)


class TestExpiry:

    @pytest.mark.parametrize('days, expected', [
        (None, 7),
        (0.1, 0.5),
        (0.5, 0.5),
        (14, 14),
        (45, 30),
    ])
    def test_clamp(self, days, expected):
        assert clamp_expiry_days(days) == expected

    def test_calculate_expiry(self):
        assert calculate_expiry(2, NOW) == NOW + timedelta(days=2)
        assert calculate_expiry(None, NOW) == NOW + timedelta(days=7)

    def test_is_expired_is_strict(self):
        assert not is_expired(NOW, NOW)
        assert is_expired(NOW, NOW + timedelta(seconds=1))

    def test_time_until_expiry_never_negative(self):
        assert time_until_expiry(NOW, NOW + timedelta(days=1)) == timedelta(0)

    @pytest.mark.parametrize('remaining, text', [
        (timedelta(days=2, hours=3), '2 days, 3 hours'),
        (timedelta(days=1, hours=1), '1 day, 1 hour'),
        (timedelta(hours=5, minutes=30), '5 hours, 30 minutes'),
        (timedelta(minutes=45), '45 minutes'),
        (timedelta(0), 'Expired'),
    ])
    def test_format_time_remaining(self, remaining, text):
        assert format_time_remaining(NOW + remaining, NOW) == text

    def test_expiring_soon_window(self):
        assert is_expiring_soon(NOW + timedelta(hours=23), NOW)
        assert is_expiring_soon(NOW + timedelta(hours=24), NOW)
        assert not is_expiring_soon(NOW + timedelta(hours=25), NOW)
        assert not is_expiring_soon(NOW - timedelta(hours=1), NOW)


class TestSubmissionIds:

    def test_format(self):
        submission_id = generate_submission_id(1772443800000)
        assert submission_id.startswith('SUB-1772443800000-')
        assert is_submission_id(submission_id)
        assert len(submission_id.split('-')[2]) == 9

    def test_default_uses_current_time(self):
        assert is_submission_id(generate_submission_id())

    def test_suffixes_differ(self):
        ids = {generate_submission_id(1772443800000) for _ in range(100)}
        assert len(ids) == 100

    def test_timestamp_round_trip(self):
        submission_id = generate_submission_id(1772443800123)
        assert submission_timestamp(submission_id) == datetime(2026, 3, 2, 9, 30, 0, 123000)

    @pytest.mark.parametrize('value', ['SUB-123-ABCDEFGHI', 'sub-1772443800000-ABCDEFGHI',
                                       'SUB-1772443800000-abcdefghi',
                                       'SUB-1772443800000-ABCDEFGHI\n', None])
    def test_malformed(self, value):
        assert not is_submission_id(value)
        assert submission_timestamp(value) is None
