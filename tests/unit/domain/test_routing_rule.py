"""Tests for rule conditions, target criteria and rule selection."""

from datetime import timedelta

import pytest

from lexroute.domain.entities.request import RequestAttributes
from lexroute.domain.entities.routing_rule import (
    RoutingConditions,
    RoutingRule,
    TargetCriteria,
)
from lexroute.domain.errors import ValidationError
from lexroute.domain.policies.rule_matching import find_applicable_rule, matching_rules
from lexroute.domain.value_objects.enums import RequestType, SelectionStrategy, Urgency
from tests.fakes import NOW, make_provider, make_rule


def _attrs(**kw) -> RequestAttributes:
    kw.setdefault("request_type", RequestType.CONSULTATION)
    return RequestAttributes(**kw)


# ─── Conditions ─────────────────────────────────────────────────────


def test_match_is_case_insensitive():
    rule = make_rule("r1", 1, match={"category": "Family"})
    assert rule.matches(_attrs(category="FAMILY"))
    assert not rule.matches(_attrs(category="tax"))


def test_every_condition_must_hold():
    rule = make_rule("r1", 1, match={"category": "family", "urgency": "urgent"})
    assert rule.matches(_attrs(category="family", urgency=Urgency.URGENT))
    assert not rule.matches(_attrs(category="family", urgency=Urgency.LOW))


def test_any_value_matches_missing_attribute():
    rule = make_rule("r1", 1, match={"region": "*"})
    assert rule.matches(_attrs(region="north"))
    assert rule.matches(_attrs())


def test_missing_attribute_fails_concrete_condition():
    rule = make_rule("r1", 1, match={"region": "north"})
    assert not rule.matches(_attrs())


def test_open_attribute_set():
    rule = make_rule("r1", 1, match={"channel": ["app", "web"]})
    assert rule.matches(_attrs(extra={"channel": "Web"}))
    assert not rule.matches(_attrs(extra={"channel": "phone"}))


def test_exclude_categories_and_amount_range():
    conditions = RoutingConditions.from_storage(
        {
            "match": {"request_type": "service"},
            "exclude_categories": ["criminal"],
            "min_amount": 100,
            "max_amount": 500,
        }
    )
    base = {"request_type": RequestType.SERVICE}
    assert conditions.matches(RequestAttributes(**base, category="civil", amount=250))
    assert not conditions.matches(RequestAttributes(**base, category="criminal", amount=250))
    assert not conditions.matches(RequestAttributes(**base, category="civil", amount=50))
    assert not conditions.matches(RequestAttributes(**base, category="civil"))


def test_catch_all_matches_everything():
    rule = make_rule("r1", 1, catch_all=True)
    assert rule.matches(_attrs(request_type=RequestType.LITIGATION, category="anything"))


# ─── Validation ─────────────────────────────────────────────────────


def test_rule_without_conditions_rejected():
    with pytest.raises(ValidationError, match="at least one condition"):
        make_rule("r1", 1).validate()


def test_catch_all_with_conditions_rejected():
    with pytest.raises(ValidationError, match="catch_all"):
        make_rule("r1", 1, match={"category": "tax"}, catch_all=True).validate()


@pytest.mark.parametrize("priority", [True, 1.5, "1", None])
def test_priority_must_be_int(priority):
    rule = make_rule("r1", 1, catch_all=True)
    bad = RoutingRule(
        id=rule.id, name=rule.name, priority=priority, conditions=rule.conditions,
    )
    with pytest.raises(ValidationError, match="priority"):
        bad.validate()


def test_target_rating_bounds():
    with pytest.raises(ValidationError, match="min_rating"):
        TargetCriteria(min_rating=6).validate()


def test_target_overlapping_ids_rejected():
    with pytest.raises(ValidationError, match="both targeted and excluded"):
        TargetCriteria(provider_ids=frozenset({"p1"}), exclude_provider_ids=frozenset({"p1"})).validate()


def test_non_string_condition_value_rejected():
    with pytest.raises(ValidationError):
        RoutingConditions.from_storage({"match": {"category": [3]}})


# ─── Target criteria ────────────────────────────────────────────────


def test_target_never_admits_unavailable_provider():
    criteria = TargetCriteria()
    assert not criteria.admits(make_provider("p1", is_active=False))
    assert not criteria.admits(make_provider("p2", can_accept_requests=False))
    assert criteria.admits(make_provider("p3"))


def test_target_filters():
    criteria = TargetCriteria(
        specializations=frozenset({"tax"}),
        require_certification=True,
        min_rating=4.0,
        regions=frozenset({"north"}),
    )
    good = make_provider(
        "p1", specializations=frozenset({"Tax"}), is_certified=True, rating=4.5, region="North",
    )
    assert criteria.admits(good)
    assert not criteria.admits(make_provider("p2", specializations=frozenset({"tax"}), rating=4.5, region="north"))


def test_explicit_provider_ids_override_other_criteria():
    criteria = TargetCriteria(provider_ids=frozenset({"p1"}), require_certification=True)
    assert criteria.admits(make_provider("p1", is_certified=False))
    assert not criteria.admits(make_provider("p2", is_certified=True))


def test_max_active_requests():
    criteria = TargetCriteria(max_active_requests=3)
    assert criteria.admits(make_provider("p1", active=2))
    assert not criteria.admits(make_provider("p2", active=3))


# ─── Rule selection ─────────────────────────────────────────────────


def test_lowest_priority_matching_rule_wins():
    rules = [
        make_rule("b", 2, catch_all=True),
        make_rule("a", 1, match={"category": "family"}),
        make_rule("c", 0, match={"category": "tax"}),
    ]
    assert find_applicable_rule(rules, _attrs(category="family")).id == "a"
    assert find_applicable_rule(rules, _attrs(category="tax")).id == "c"
    assert find_applicable_rule(rules, _attrs(category="other")).id == "b"


def test_inactive_rules_are_skipped():
    rules = [make_rule("a", 1, catch_all=True, is_active=False)]
    assert find_applicable_rule(rules, _attrs()) is None


def test_priority_ties_break_on_creation_then_id():
    older = make_rule("z", 1, catch_all=True, created_at=NOW - timedelta(days=1))
    newer = make_rule("a", 1, catch_all=True, created_at=NOW)
    same_time = make_rule("b", 1, catch_all=True, created_at=NOW)
    assert find_applicable_rule([newer, same_time, older], _attrs()).id == "z"
    assert [r.id for r in matching_rules([same_time, newer], _attrs())] == ["a", "b"]


def test_no_rule_matches_returns_none():
    rules = [make_rule("a", 1, match={"request_type": "consultation"})]
    assert find_applicable_rule(rules, _attrs(request_type=RequestType.LITIGATION)) is None


# ─── Storage round-trip ─────────────────────────────────────────────

_BATTERY = [
    _attrs(category="family", urgency=Urgency.URGENT, region="north", amount=120.0),
    _attrs(category="FAMILY", urgency=Urgency.LOW),
    _attrs(request_type=RequestType.SERVICE, category="criminal", amount=300.0),
    _attrs(request_type=RequestType.LITIGATION, category="unknown-thing"),
    _attrs(extra={"channel": "web"}),
    _attrs(),
]


@pytest.mark.parametrize(
    "storage",
    [
        {"match": {"category": ["family", "tax"], "urgency": "urgent"}},
        {"match": {"region": "*", "request_type": "consultation"}},
        {"match": {"request_type": "service"}, "exclude_categories": ["criminal"], "min_amount": 100},
        {"match": {"channel": "web"}},
        {"catch_all": True},
    ],
)
def test_storage_round_trip_preserves_matching(storage):
    rule = RoutingRule(
        id="r1",
        name="round trip",
        priority=3,
        conditions=RoutingConditions.from_storage(storage),
        target=TargetCriteria(specializations=frozenset({"tax"}), min_rating=3.5),
        strategy=SelectionStrategy.ROUND_ROBIN,
        created_at=NOW,
        updated_at=NOW,
    )
    restored = RoutingRule.from_storage(rule.to_storage())

    assert restored == rule
    for sample in _BATTERY:
        assert restored.matches(sample) == rule.matches(sample)
