"""
Tests for the plain data types and their helpers.
"""

from datetime import datetime, timezone

import pytest
import pandas as pd

from src.models import (
    MarketSnapshot, Observation, OptionKind, PricingRequest,
    observations_from_frame, observations_to_frame, time_to_expiry,
)


class TestOptionKind:

    @pytest.mark.parametrize("raw,expected", [
        ("call", OptionKind.CALL), ("C", OptionKind.CALL),
        ("put", OptionKind.PUT), ("p", OptionKind.PUT),
        (OptionKind.PUT, OptionKind.PUT),
    ])
    def test_parse(self, raw, expected):
        assert OptionKind.parse(raw) is expected

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            OptionKind.parse("straddle")


class TestRecords:

    def test_observation_immutable(self):
        obs = Observation(1_700_000_000, 0.2)
        with pytest.raises(AttributeError):
            obs.implied_volatility = 0.3

    def test_negative_expiry_rejected(self):
        with pytest.raises(ValueError):
            Observation(-1, 0.2)

    def test_snapshot_requires_positive_spot(self):
        with pytest.raises(ValueError):
            MarketSnapshot(spot_price=0.0, risk_free_rate=0.04)

    def test_snapshot_timestamp_defaults_to_now(self):
        snap = MarketSnapshot(spot_price=100.0, risk_free_rate=0.04)
        assert snap.timestamp.tzinfo is not None

    def test_request_kind_coerced(self):
        req = PricingRequest(100.0, 100.0, 1.0, 0.05, 0.2, "p")
        assert req.option_kind is OptionKind.PUT
        assert not req.is_call

    def test_with_volatility(self, atm_request):
        bumped = atm_request.with_volatility(0.3)
        assert bumped.volatility == 0.3
        assert atm_request.volatility == 0.2
        assert bumped.strike == atm_request.strike


class TestHelpers:

    def test_time_to_expiry(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        one_year = int(now.timestamp()) + 365 * 86400
        assert time_to_expiry(one_year, now) == pytest.approx(1.0)

    def test_time_to_expiry_past_is_zero(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert time_to_expiry(int(now.timestamp()) - 10, now) == 0.0

    def test_frame_adapters(self, term_observations):
        df = observations_to_frame(term_observations)
        assert list(df.columns) == ["expiry", "iv"]
        assert observations_from_frame(df) == term_observations

    def test_from_frame_custom_columns(self):
        df = pd.DataFrame({"ts": [10, 20], "vol": [0.3, 0.2]})
        obs = observations_from_frame(df, expiry_col="ts", iv_col="vol")
        assert obs == [Observation(10, 0.3), Observation(20, 0.2)]
