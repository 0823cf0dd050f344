"""Pytest configuration and shared fixtures."""

import pytest

from lexroute.application.use_cases.assign_request import AssignmentEngine
from lexroute.application.use_cases.candidate_pool import ProviderCandidatePool
from lexroute.application.use_cases.routing_rules import RoutingRuleCatalog
from lexroute.domain.policies.sla_clock import SLAClock
from tests.fakes import (
    FakeAssignmentLog,
    FakeDirectory,
    FakeNotifier,
    FakeRequestRepo,
    FakeRoundRobinRepo,
    FakeRuleRepo,
    FakeTransaction,
    FakeValidator,
)


@pytest.fixture
def clock():
    return SLAClock()


@pytest.fixture
def request_repo():
    return FakeRequestRepo()


@pytest.fixture
def rule_repo():
    return FakeRuleRepo()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def validator():
    return FakeValidator()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def assignment_log():
    return FakeAssignmentLog()


@pytest.fixture
def rr_repo():
    return FakeRoundRobinRepo()


@pytest.fixture
def transaction():
    return FakeTransaction()


@pytest.fixture
def catalog(rule_repo):
    return RoutingRuleCatalog(rule_repo)


@pytest.fixture
def engine(
    request_repo, catalog, directory, rr_repo, validator, notifier, assignment_log, transaction, clock
):
    return AssignmentEngine(
        request_repo=request_repo,
        catalog=catalog,
        pool=ProviderCandidatePool(directory),
        rr_repo=rr_repo,
        validator=validator,
        notifier=notifier,
        assignment_log=assignment_log,
        transaction=transaction,
        clock=clock,
    )
