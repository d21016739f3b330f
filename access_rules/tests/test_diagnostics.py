"""
Unit tests for evaluation diagnostics and decision traces.
"""

import pytest
from unittest.mock import MagicMock

from access_rules.diagnostics import CollectingSink, DiagnosticRecord, NullSink, StructlogSink
from access_rules.engine import ActorRulesEngine
from access_rules.models import Rule, RuleFailure
from shared.errors import AuthorizationError
from shared.test_helpers import TestDataFactory


@pytest.fixture
def actor():
    return TestDataFactory.actor1()


@pytest.fixture
def sink():
    return CollectingSink()


class TestSinks:
    """Sink implementations."""

    def test_null_sink_returns_none(self):
        assert NullSink().debug("anything", {"depth": 0}) is None

    def test_collecting_sink_splits_values(self):
        sink = CollectingSink()
        sink.debug("AND Access Allowed", {"self_pass": True}, "extra")

        assert sink.records == [
            DiagnosticRecord("AND Access Allowed", {"self_pass": True, "details": ["extra"]})
        ]

    def test_collecting_sink_forwards(self):
        forward = MagicMock()
        sink = CollectingSink(forward=forward)
        sink.debug("message", {"depth": 1})

        forward.debug.assert_called_once_with("message", {"depth": 1})

    def test_collecting_sink_clear(self):
        sink = CollectingSink()
        sink.debug("message")
        sink.clear()

        assert sink.records == []

    def test_structlog_sink_passes_mappings_as_fields(self):
        logger = MagicMock()
        StructlogSink(logger).debug("OR Access Denied", {"self_pass": False, "depth": 2})

        logger.debug.assert_called_once_with("OR Access Denied", self_pass=False, depth=2)

    def test_structlog_sink_keeps_other_values(self):
        logger = MagicMock()
        StructlogSink(logger).debug("message", 1, [2])

        logger.debug.assert_called_once_with("message", details=[1, [2]])


class TestCheckDiagnostics:
    """Diagnostics emitted by check()."""

    def test_failing_rule_reason_is_emitted(self, actor, sink):
        engine = ActorRulesEngine.create(sink=sink).with_tenant("tenant2")

        assert engine.check(actor) is False
        assert sink.records[0] == DiagnosticRecord(
            "Tenant tenant1 does not match tenant2", {"rule": "tenant", "depth": 0}
        )

    def test_node_decision_is_emitted(self, actor, sink):
        ActorRulesEngine.create(sink=sink).with_tenant("tenant1").check(actor)

        assert sink.records == [
            DiagnosticRecord(
                "AND Access Allowed",
                {"self_pass": True, "children_pass": True, "depth": 0}
            )
        ]

    def test_or_decision_is_emitted(self, actor, sink):
        ActorRulesEngine.create(sink=sink).or_(lambda b: b.with_tenant("nope")).check(actor)

        assert sink.records[-1] == DiagnosticRecord(
            "OR Access Denied",
            {"self_pass": False, "children_pass": False, "depth": 0}
        )

    def test_child_depth_is_reported(self, actor, sink):
        ActorRulesEngine.create(sink=sink).and_(
            lambda b: b.and_(lambda c: c.with_roles(["admin"]))
        ).check(actor)

        failures = [r for r in sink.records if "rule" in r.details]
        assert failures == [
            DiagnosticRecord("Role role1 was not included in ['admin']", {"rule": "role", "depth": 2})
        ]

    def test_short_circuit_still_reports_first_failure(self, actor, sink):
        """Rules after the first failure at a level are skipped."""
        later = MagicMock(return_value=(True, None))
        engine = ActorRulesEngine.create(sink=sink).with_tenant("tenant2").with_(Rule("later", later))

        assert engine.check(actor) is False
        later.assert_not_called()
        assert [r.details["rule"] for r in sink.records if "rule" in r.details] == ["tenant"]

    def test_sink_override_per_call(self, actor, sink):
        configured = CollectingSink()
        engine = ActorRulesEngine.create(sink=configured).with_tenant("tenant2")
        engine.check(actor, sink=sink)

        assert configured.records == []
        assert len(sink.records) == 2

    def test_sink_return_value_is_ignored(self, actor):
        sink = MagicMock()
        sink.debug.return_value = False
        engine = ActorRulesEngine.create(sink=sink).with_tenant("tenant1")

        assert engine.check(actor) is True

    def test_raising_rule_fails_gracefully(self, actor, sink):
        def broken(context):
            raise KeyError("tenant")

        engine = ActorRulesEngine.create(sink=sink).with_(Rule("broken", broken))

        assert engine.check(actor) is False
        assert sink.records[0].message == "Rule broken raised KeyError: 'tenant'"


class TestEvaluate:
    """Decision traces from evaluate() and enforce()."""

    def test_allowed_result(self, actor):
        result = ActorRulesEngine.create().with_tenant("tenant1").evaluate(actor)

        assert result.allowed is True
        assert result.reason == "Access allowed"
        assert result.failures == []
        assert result.evaluation_time_ms >= 0

    def test_first_failure_per_level(self, actor):
        engine = ActorRulesEngine.create().with_tenant("tenant2").or_(
            lambda b: b.with_roles(["admin"])
        ).or_(lambda b: b.with_scopes(["execute"]))
        result = engine.evaluate(actor)

        assert result.allowed is False
        assert result.reason == "Tenant tenant1 does not match tenant2"
        assert [f.rule for f in result.failures] == ["tenant", "role", "scopes"]
        assert result.first_failures == {
            0: RuleFailure("tenant", "Tenant tenant1 does not match tenant2", 0),
            1: RuleFailure("role", "Role role1 was not included in ['admin']", 1),
        }

    def test_allowed_result_keeps_failed_alternatives(self, actor):
        engine = ActorRulesEngine.create().with_tenant("tenant2").or_(lambda b: b.with_role("role1"))
        result = engine.evaluate(actor)

        assert result.allowed is True
        assert [f.rule for f in result.failures] == ["tenant"]

    def test_vacuous_denial_has_generic_reason(self, actor):
        result = ActorRulesEngine.create("OR").evaluate(actor)

        assert result.allowed is False
        assert result.reason == "Access denied"

    def test_evaluate_forwards_to_configured_sink(self, actor, sink):
        ActorRulesEngine.create(sink=sink).with_tenant("tenant2").evaluate(actor)

        assert sink.records[0].details == {"rule": "tenant", "depth": 0}

    def test_enforce_allows(self, actor):
        result = ActorRulesEngine.create().with_tenant("tenant1").enforce(actor)

        assert result.allowed is True

    def test_enforce_denies(self, actor):
        engine = ActorRulesEngine.create().with_tenant("tenant1").and_(
            lambda b: b.with_scopes(["nonexistent-scope"])
        )

        with pytest.raises(AuthorizationError) as exc_info:
            engine.enforce(actor)

        error = exc_info.value
        assert error.code == "AUTHORIZATION_ERROR"
        assert error.message.startswith("Claims scopes ['read', 'write']")
        assert error.details["failures"] == [
            {"rule": "scopes", "reason": error.message, "depth": 1}
        ]
        assert error.to_response().code == "AUTHORIZATION_ERROR"
