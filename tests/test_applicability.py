"""Tests for the applicability matrix and category mapping."""

import pytest

from agent_audit.applicability import (
    APPLICABILITY_MATRIX,
    categories_for,
    get_applicability,
    profile_applicabilities,
    should_include,
)
from agent_audit.models import ApplicabilityStatus, ScoreCategory
from agent_audit.profile import PROFILES


class TestApplicability:
    def test_mcp_not_applicable_for_blogs(self):
        applicability = get_applicability("mcp", "blog_content")

        assert applicability.status is ApplicabilityStatus.NOT_APPLICABLE
        assert not applicability.included_in_category_math
        assert applicability.reason == "mcp is not applicable to blog/content sites"

    @pytest.mark.parametrize("profile", ["ecommerce", "saas"])
    def test_action_indicators_required_for_transacting_sites(self, profile):
        for name in ("mcp", "agent_json", "ai_agent_json"):
            assert get_applicability(name, profile).status is ApplicabilityStatus.REQUIRED

    def test_optional_by_default(self):
        applicability = get_applicability("agent_json", "kb_support")

        assert applicability.status is ApplicabilityStatus.OPTIONAL
        assert applicability.included_in_category_math

    @pytest.mark.parametrize("profile", PROFILES)
    def test_llms_txt_required_everywhere(self, profile):
        assert get_applicability("llms_txt", profile).status is ApplicabilityStatus.REQUIRED

    def test_unknown_indicator_is_optional(self):
        assert get_applicability("carrier_pigeon", "ecommerce").status is ApplicabilityStatus.OPTIONAL

    def test_government_skips_ai_agent_json(self):
        assert not should_include("ai_agent_json", "gov_nontransacting")
        assert should_include("agent_json", "gov_nontransacting")

    def test_profile_applicabilities_cover_matrix(self):
        assert set(profile_applicabilities("saas")) == set(APPLICABILITY_MATRIX)


class TestCategoryMapping:
    def test_indicator_in_several_categories(self):
        assert categories_for("canonical_urls") == [ScoreCategory.UNDERSTANDING, ScoreCategory.TRUST]

    def test_single_category(self):
        assert categories_for("mcp") == [ScoreCategory.ACTIONS]

    def test_every_matrix_indicator_is_scored_somewhere(self):
        assert all(categories_for(name) for name in APPLICABILITY_MATRIX)
