import logging

import pytest

from renewal_billing.billing.errors import UnknownPrice
from renewal_billing.billing.plans import PlanResolver, parse_plan_name
from renewal_billing.config.base import DEFAULT_PRICE_PLANS
from renewal_billing.models import PlanName
from renewal_billing.observability.metrics import MetricsManager


@pytest.fixture
def metrics():
    return MetricsManager(enabled=True)


@pytest.fixture
def resolver(metrics):
    return PlanResolver(DEFAULT_PRICE_PLANS, metrics=metrics)


def fallback_count(metrics, reason):
    return metrics.registry.get_sample_value("billing_plan_fallback_total", {"reason": reason}) or 0


@pytest.mark.parametrize("price_id,expected", sorted(DEFAULT_PRICE_PLANS.items()))
def test_mapped_price_ids_resolve_from_table(resolver, price_id, expected):
    assert resolver.resolve(price_id).value == expected
    # Table hits ignore metadata entirely.
    assert resolver.resolve(price_id, {"plan_name": "Starter"}).value == expected


def test_unmapped_price_uses_metadata_plan_name(resolver, metrics):
    assert resolver.resolve("price_unknown", {"plan_name": "Enterprise"}) is PlanName.ENTERPRISE
    assert fallback_count(metrics, "metadata") == 1


def test_metadata_plan_name_is_case_insensitive(resolver):
    assert resolver.resolve("price_unknown", {"plan_name": "starter"}) is PlanName.STARTER


def test_invalid_metadata_plan_name_falls_through_to_default(resolver):
    assert resolver.resolve("price_unknown", {"plan_name": "Platinum"}) is PlanName.PROFESSIONAL


def test_unmapped_price_without_metadata_defaults_loudly(resolver, metrics, caplog):
    with caplog.at_level(logging.WARNING, logger="renewal_billing.billing.plans"):
        plan = resolver.resolve("price_unknown", {})

    assert plan is PlanName.PROFESSIONAL
    assert fallback_count(metrics, "default") == 1
    assert any("price_unknown" in record.getMessage() for record in caplog.records)


def test_missing_price_id_defaults(resolver):
    assert resolver.resolve(None) is PlanName.PROFESSIONAL


def test_configured_default_plan_is_used():
    resolver = PlanResolver(DEFAULT_PRICE_PLANS, default_plan="Unknown")

    assert resolver.resolve("price_unknown") is PlanName.UNKNOWN


def test_strict_mode_rejects_unmapped_price(metrics):
    resolver = PlanResolver(DEFAULT_PRICE_PLANS, strict=True, metrics=metrics)

    with pytest.raises(UnknownPrice) as exc_info:
        resolver.resolve("price_unknown")

    assert exc_info.value.price_id == "price_unknown"
    assert fallback_count(metrics, "rejected") == 1


def test_strict_mode_still_honours_metadata():
    resolver = PlanResolver(DEFAULT_PRICE_PLANS, strict=True)

    assert resolver.resolve("price_unknown", {"plan_name": "Starter"}) is PlanName.STARTER


def test_resolution_is_deterministic(resolver):
    results = {resolver.resolve("price_starter_monthly") for _ in range(20)}

    assert results == {PlanName.STARTER}


@pytest.mark.parametrize("value", [None, 3, "", "Gold"])
def test_parse_plan_name_rejects_non_plans(value):
    assert parse_plan_name(value) is None
