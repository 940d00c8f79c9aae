"""
Tests for the insights normalizer: result derivation and malformed input.
"""
from datetime import date, datetime, timezone

import pytest

from adsync.models.enums import BreakdownType
from adsync.schemas.meta import MetaInsightRow, MetaCampaign, MetaCreative
from adsync.services.meta import meta_normalizer as normalizer


def actions(**counts):
    return [{"action_type": k.replace("__", "."), "value": str(v)} for k, v in counts.items()]


class TestScalars:
    """Numeric and date coercion defaults instead of raising"""

    @pytest.mark.parametrize("value,expected", [
        ("12", 12), (7, 7), ("3.0", 3), (None, 0), ("", 0), ("abc", 0), ([], 0), (True, 0),
    ])
    def test_to_int(self, value, expected):
        assert normalizer.to_int(value) == expected

    def test_to_float(self):
        assert normalizer.to_float("42.50") == 42.5
        assert normalizer.to_float(None) == 0.0
        assert normalizer.to_float({"x": 1}) == 0.0

    def test_minor_to_major(self):
        assert normalizer.minor_to_major("15000") == 150.0
        assert normalizer.minor_to_major(None) is None
        assert normalizer.minor_to_major("0") is None

    def test_parse_datetime_with_compact_offset(self):
        parsed = normalizer.parse_datetime("2025-01-31T10:00:00+0000")
        assert parsed == datetime(2025, 1, 31, 10, 0, tzinfo=timezone.utc)

    def test_parse_datetime_malformed(self):
        assert normalizer.parse_datetime("not a date") is None
        assert normalizer.parse_datetime(None) is None

    def test_parse_date(self):
        assert normalizer.parse_date("2026-03-01") == date(2026, 3, 1)
        assert normalizer.parse_date("03/01/2026") is None


class TestActionArrays:
    """Action arrays become maps; anything else becomes empty"""

    @pytest.mark.parametrize("malformed", [None, "oops", 12, {"action_type": "lead"}, [None, "x", 3]])
    def test_malformed_arrays_are_empty(self, malformed):
        assert normalizer.parse_actions(malformed) == {}
        assert normalizer.parse_action_values(malformed) == {}
        assert normalizer.video_metric(malformed) == 0
        assert normalizer.first_action_value(malformed) == 0
        assert normalizer.raw_array(malformed) == ([] if not isinstance(malformed, list) else malformed)

    def test_entries_without_action_type_are_skipped(self):
        parsed = normalizer.parse_actions([{"value": "3"}, {"action_type": "lead", "value": "2"}])
        assert parsed == {"lead": 2}

    def test_bad_value_counts_as_zero(self):
        assert normalizer.parse_actions([{"action_type": "lead", "value": "n/a"}]) == {"lead": 0}

    def test_video_metric_reads_video_view(self):
        data = [{"action_type": "video_view", "value": "88"}]
        assert normalizer.video_metric(data) == 88
        assert normalizer.video_metric([{"action_type": "other", "value": "5"}]) == 0


class TestDeriveResults:
    """Only the primary action type feeds the result columns"""

    ACTIONS = {"lead": 5, "omni_purchase": 3, "schedule_total": 2, "offsite_conversion.fb_pixel_lead": 4}
    VALUES = {"omni_purchase": 150.0, "purchase": 99.0}

    def test_lead_type_counts_only_that_type(self):
        results = normalizer.derive_results(self.ACTIONS, self.VALUES, {}, {}, "lead")
        assert results == normalizer.DerivedResults(leads=5)

    def test_custom_lead_type(self):
        results = normalizer.derive_results(self.ACTIONS, self.VALUES, {}, {}, "offsite_conversion.fb_pixel_lead")
        assert results.leads == 4
        assert results.purchases == 0
        assert results.schedules == 0

    def test_purchase_type_counts_purchases_and_value(self):
        results = normalizer.derive_results(self.ACTIONS, self.VALUES, {}, {}, "omni_purchase")
        assert results == normalizer.DerivedResults(purchases=3, purchase_value=150.0)

    def test_schedule_type_counts_only_schedules(self):
        results = normalizer.derive_results(self.ACTIONS, self.VALUES, {}, {}, "schedule_total")
        assert results == normalizer.DerivedResults(schedules=2)

    def test_primary_type_found_in_conversions(self):
        results = normalizer.derive_results({}, {}, {"schedule_total": 6}, {}, "schedule_total")
        assert results.schedules == 6

    def test_actions_take_precedence_over_conversions(self):
        results = normalizer.derive_results({"lead": 2}, {}, {"lead": 9}, {}, "lead")
        assert results.leads == 2

    def test_primary_type_absent_is_zero(self):
        results = normalizer.derive_results(self.ACTIONS, self.VALUES, {}, {}, "complete_registration")
        assert results == normalizer.DerivedResults()

    def test_fallback_without_primary_type(self):
        results = normalizer.derive_results(
            {"lead": 5, "purchase": 2}, {"purchase": 80.0}, {"schedule_total": 1}, {}, None
        )
        assert results == normalizer.DerivedResults(leads=5, purchases=2, purchase_value=80.0, schedules=1)


class TestNormalizeInsightRow:
    """End-to-end row normalization"""

    def test_purchase_account_row(self):
        row = MetaInsightRow.model_validate({
            "date_start": "2026-01-05",
            "date_stop": "2026-01-05",
            "campaign_id": "c1",
            "spend": "42.50",
            "impressions": "1000",
            "reach": "800",
            "frequency": "1.25",
            "clicks": "30",
            "inline_link_clicks": "20",
            "outbound_clicks": [{"action_type": "outbound_click", "value": "12"}],
            "actions": [
                {"action_type": "lead", "value": "5"},
                {"action_type": "omni_purchase", "value": "3"},
                {"action_type": "landing_page_view", "value": "17"},
                {"action_type": "onsite_conversion.messaging_conversation_started_7d", "value": "4"},
            ],
            "action_values": [{"action_type": "omni_purchase", "value": "150.00"}],
            "video_thruplay_watched_actions": [{"action_type": "video_view", "value": "9"}],
            "quality_ranking": "ABOVE_AVERAGE",
            "cost_per_action_type": [{"action_type": "lead", "value": "8.5"}],
        })

        values = normalizer.normalize_insight_row(row, "omni_purchase")

        assert values["date"] == date(2026, 1, 5)
        assert values["spend"] == 42.5
        assert values["impressions"] == 1000
        assert values["frequency"] == 1.25
        assert values["outbound_clicks"] == 12
        assert values["purchases"] == 3
        assert values["purchase_value"] == 150.0
        assert values["leads"] == 0
        assert values["schedules"] == 0
        assert values["landing_page_views"] == 17
        assert values["messaging_conversations_started"] == 4
        assert values["video_thruplay"] == 9
        assert values["quality_ranking"] == "ABOVE_AVERAGE"
        assert values["platform_campaign_id"] == "c1"
        assert values["platform_ad_id"] is None
        assert values["cost_per_action_json"] == [{"action_type": "lead", "value": "8.5"}]

    def test_malformed_row_defaults(self):
        row = MetaInsightRow.model_validate({
            "date_start": "2026-01-05",
            "spend": "n/a",
            "impressions": None,
            "actions": "broken",
            "action_values": {"omni_purchase": 1},
        })

        values = normalizer.normalize_insight_row(row, "omni_purchase")

        assert values["spend"] == 0.0
        assert values["impressions"] == 0
        assert values["purchases"] == 0
        assert values["actions_json"] == []

    def test_breakdown_dimensions(self):
        row = MetaInsightRow.model_validate({"date_start": "2026-01-05", "age": "25-34", "gender": "female"})
        values = normalizer.normalize_breakdown_row(row, BreakdownType.AGE_GENDER, None)
        assert values["breakdown_type"] == "age_gender"
        assert (values["dimension_1"], values["dimension_2"]) == ("25-34", "female")

    def test_hourly_breakdown_has_one_dimension(self):
        row = MetaInsightRow.model_validate({
            "date_start": "2026-01-05",
            "hourly_stats_aggregated_by_advertiser_time_zone": "10:00:00 - 10:59:59",
        })
        values = normalizer.normalize_breakdown_row(row, BreakdownType.HOURLY, None)
        assert values["dimension_1"] == "10:00:00 - 10:59:59"
        assert values["dimension_2"] is None


class TestStructureAndCreatives:
    """Structure rows and creative resolution"""

    def test_campaign_budget_in_major_units(self):
        values = normalizer.normalize_campaign(MetaCampaign.model_validate({
            "id": "c1", "name": "Spring", "daily_budget": "5000", "start_time": "2026-01-01T00:00:00+0000",
        }))
        assert values["daily_budget"] == 50.0
        assert values["lifetime_budget"] is None
        assert values["special_ad_categories"] == []
        assert values["start_time"].year == 2026

    def test_image_url_priority(self):
        spec = {"link_data": {"image_url": "https://img/spec.jpg"}}
        assert normalizer.resolve_image_url(
            {"image_url": "https://img/direct.jpg", "object_story_spec": spec, "thumbnail_url": "t"}
        ) == "https://img/direct.jpg"
        assert normalizer.resolve_image_url({"object_story_spec": spec, "thumbnail_url": "t"}) == "https://img/spec.jpg"
        assert normalizer.resolve_image_url(
            {"object_story_spec": {"video_data": {"image_url": "https://img/video.jpg"}}, "thumbnail_url": "t"}
        ) == "https://img/video.jpg"
        assert normalizer.resolve_image_url({"thumbnail_url": "t"}) == "t"
        assert normalizer.resolve_image_url({"object_story_spec": "garbage"}) is None

    def test_post_image_url(self):
        assert normalizer.post_image_url({"full_picture": "https://post/full.jpg"}) == "https://post/full.jpg"
        post = {"attachments": {"data": [{"media": {"image": {"src": "https://post/att.jpg"}}}]}}
        assert normalizer.post_image_url(post) == "https://post/att.jpg"
        assert normalizer.post_image_url({}) is None

    def test_creative_update_values_skip_missing_fields(self):
        creative = MetaCreative(ad_id="a1", body="Buy now", call_to_action_type="SHOP_NOW")
        assert normalizer.creative_update_values(creative) == {
            "creative_body": "Buy now",
            "creative_cta": "SHOP_NOW",
        }


class TestPrimaryActionIsolation:
    """Results never leak between lead, purchase and schedule types"""

    ROW_ACTIONS = [{"action_type": "lead", "value": 5}, {"action_type": "purchase", "value": 2}]

    @pytest.mark.parametrize("primary,expected", [
        ("lead", {"leads": 5, "purchases": 0, "schedules": 0}),
        ("purchase", {"leads": 0, "purchases": 2, "schedules": 0}),
        ("schedule_total", {"leads": 0, "purchases": 0, "schedules": 0}),
    ])
    def test_permutations(self, primary, expected):
        row = MetaInsightRow.model_validate({"date_start": "2026-02-10", "actions": self.ROW_ACTIONS})
        values = normalizer.normalize_insight_row(row, primary)
        assert {k: values[k] for k in expected} == expected

    def test_omni_purchase_account(self):
        row = MetaInsightRow.model_validate({
            "date_start": "2026-02-10",
            "date_stop": "2026-02-10",
            "spend": "42.50",
            "actions": [{"action_type": "omni_purchase", "value": "3"}],
            "action_values": [{"action_type": "omni_purchase", "value": "150.00"}],
        })

        values = normalizer.normalize_insight_row(row, "omni_purchase")

        assert values["purchases"] == 3
        assert values["purchase_value"] == 150.0
        assert values["leads"] == 0
        assert values["schedules"] == 0
        assert values["spend"] == 42.5
        assert values["date"] == date(2026, 2, 10)
