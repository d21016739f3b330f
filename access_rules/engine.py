"""
Rule composition and evaluation engine.

A ``RulesEngine`` is one node of a rule tree. It holds its own rules, the
sub-trees added with ``and_`` and the sub-trees added with ``or_``. A node
starts as AND and latches to OR the first time ``or_`` is called on it:

- AND: ``rules and and_children and all(or_children)``
- OR:  ``(rules and and_children) or any(or_children)``

An OR node with no rules and no AND-children has a false self term, so an
OR branch never passes just because it is empty. An empty AND node passes.

Trees are built once and then only evaluated. ``check`` never mutates the
tree and takes no locks; build completely before sharing a tree between
threads. Evaluation recurses once per level with no depth limit.
"""

import time
from dataclasses import asdict
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from shared.config import EngineConfig, get_config
from shared.errors import AuthorizationError
from shared.logging import get_logger
from .diagnostics import NULL_SINK, CollectingSink, DiagnosticSink, StructlogSink
from .models import (
    AggregateOperator, AuthenticatedActor, Ctx, EvaluationResult,
    LogicalOperator, Rule, RuleFailure
)
from .rules import create_rule, permission_rule, role_rule, scope_rule, tenant_rule

E = TypeVar("E", bound="RulesEngine")


class RulesEngine(Generic[Ctx]):
    """Composable tree of rules over an opaque context."""

    def __init__(
        self,
        operator: Union[LogicalOperator, str] = LogicalOperator.AND,
        sink: Optional[DiagnosticSink] = None,
    ):
        self.logger = get_logger("access_rules.engine")
        self._operator = LogicalOperator.parse(operator)
        self._sink = sink if sink is not None else NULL_SINK
        self._rules: List[Rule] = []
        self._and_children: List["RulesEngine[Ctx]"] = []
        self._or_children: List["RulesEngine[Ctx]"] = []

    @classmethod
    def create(
        cls: Type[E],
        operator: Union[LogicalOperator, str] = LogicalOperator.AND,
        sink: Optional[DiagnosticSink] = None,
    ) -> E:
        return cls(operator, sink=sink)

    @property
    def operator(self) -> LogicalOperator:
        return self._operator

    @property
    def sink(self) -> DiagnosticSink:
        return self._sink

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return tuple(self._rules)

    @property
    def and_children(self) -> Tuple["RulesEngine[Ctx]", ...]:
        return tuple(self._and_children)

    @property
    def or_children(self) -> Tuple["RulesEngine[Ctx]", ...]:
        return tuple(self._or_children)

    @staticmethod
    def create_rule(name: str, predicate_fn: Callable[[Ctx], bool]) -> Rule:
        """Adapt a boolean test into a rule."""
        return create_rule(name, predicate_fn)

    def clone(self: E) -> E:
        """New empty node of the same kind sharing this node's sink."""
        return type(self)(sink=self._sink)

    # Builder

    def with_(self: E, rule: Rule) -> E:
        """Add a rule to this level."""
        self._rules.append(rule)
        return self

    def and_(self: E, build_fn: Callable[[E], Any]) -> E:
        """Add a sub-tree that must pass alongside this level's rules."""
        child = self.clone()
        build_fn(child)
        self._and_children.append(child)
        return self

    def or_(self: E, build_fn: Callable[[E], Any]) -> E:
        """Add an alternative sub-tree and switch this node to OR."""
        child = self.clone()
        build_fn(child)
        self._or_children.append(child)
        self._latch_or()
        return self

    def _latch_or(self):
        if self._operator is LogicalOperator.AND:
            self._operator = LogicalOperator.OR

    # Evaluation

    def check(self, context: Ctx, *, sink: Optional[DiagnosticSink] = None, depth: int = 0) -> bool:
        """Decide whether ``context`` satisfies this tree."""
        sink = sink if sink is not None else self._sink
        operator = self._operator

        if operator is LogicalOperator.OR and not self._rules and not self._and_children:
            self_pass = False
        else:
            self_pass = all(
                self._evaluate_rule(rule, context, sink, depth) for rule in self._rules
            ) and all(
                child.check(context, sink=sink, depth=depth + 1) for child in self._and_children
            )

        if operator is LogicalOperator.AND:
            children_pass = all(
                child.check(context, sink=sink, depth=depth + 1) for child in self._or_children
            )
            allowed = self_pass and children_pass
        else:
            children_pass = any(
                child.check(context, sink=sink, depth=depth + 1) for child in self._or_children
            )
            allowed = self_pass or children_pass

        sink.debug(
            f"{operator.value} Access {'Allowed' if allowed else 'Denied'}",
            {"self_pass": self_pass, "children_pass": children_pass, "depth": depth},
        )
        return allowed

    def _evaluate_rule(self, rule: Rule, context: Ctx, sink: DiagnosticSink, depth: int) -> bool:
        try:
            passed, reason = rule.evaluate(context)
        except Exception as e:
            self.logger.error("Error evaluating rule", rule=rule.name, error=str(e))
            passed, reason = False, f"Rule {rule.name} raised {type(e).__name__}: {e}"

        if not passed:
            sink.debug(reason, {"rule": rule.name, "depth": depth})
        return passed

    def evaluate(self, context: Ctx) -> EvaluationResult:
        """Evaluate and return the decision with its failure trace."""
        start_time = time.time()
        collector = CollectingSink(forward=self._sink)
        allowed = self.check(context, sink=collector)

        failures = [
            RuleFailure(rule=record.details["rule"], reason=record.message, depth=record.details.get("depth", 0))
            for record in collector.records
            if "rule" in record.details
        ]
        first_failures: Dict[int, RuleFailure] = {}
        for failure in failures:
            first_failures.setdefault(failure.depth, failure)

        if allowed:
            reason = "Access allowed"
        elif failures:
            reason = failures[0].reason
        else:
            reason = "Access denied"

        result = EvaluationResult(
            allowed=allowed,
            reason=reason,
            failures=failures,
            first_failures=first_failures,
            evaluation_time_ms=(time.time() - start_time) * 1000
        )
        self.logger.debug(
            "Rule evaluation result",
            allowed=result.allowed,
            reason=result.reason,
            failures=len(result.failures)
        )
        return result

    def enforce(self, context: Ctx) -> EvaluationResult:
        """Evaluate and raise ``AuthorizationError`` on deny."""
        result = self.evaluate(context)
        if not result.allowed:
            raise AuthorizationError(
                result.reason,
                {"failures": [asdict(failure) for failure in result.failures]}
            )
        return result

    def describe(self) -> Dict[str, Any]:
        """Nested summary of the tree for logging and debugging."""
        return {
            "operator": self._operator.value,
            "rules": [rule.name for rule in self._rules],
            "and": [child.describe() for child in self._and_children],
            "or": [child.describe() for child in self._or_children],
        }


class ActorRulesEngine(RulesEngine[AuthenticatedActor]):
    """Rules engine with tenant, role, scope and permission shortcuts."""

    def with_tenant(self, tenant_id: str) -> "ActorRulesEngine":
        return self.with_(tenant_rule(tenant_id))

    def with_role(self, role: str) -> "ActorRulesEngine":
        return self.with_roles([role])

    def with_roles(self, roles: Iterable[str]) -> "ActorRulesEngine":
        return self.with_(role_rule(roles))

    def with_scopes(
        self,
        scopes: Iterable[str],
        operator: Union[AggregateOperator, str] = AggregateOperator.ALL,
    ) -> "ActorRulesEngine":
        return self.with_(scope_rule(scopes, operator))

    def with_permissions(
        self,
        permissions: Iterable[str],
        operator: Union[AggregateOperator, str] = AggregateOperator.ALL,
    ) -> "ActorRulesEngine":
        return self.with_(permission_rule(permissions, operator))


def create(
    initial_operator: Optional[Union[LogicalOperator, str]] = None,
    *,
    sink: Optional[DiagnosticSink] = None,
    config: Optional[EngineConfig] = None,
) -> ActorRulesEngine:
    """Create a root rules engine.

    Without an explicit operator the configured ``default_operator`` is used.
    When ``debug_rules`` is enabled and no sink is given, diagnostics go to
    structlog.

    Each call without ``config`` builds a fresh ``EngineConfig``, which reads
    the environment and ``.env`` again. Callers creating many roots should
    load one config with ``get_config()`` and pass it in.
    """
    config = config or get_config()
    operator = initial_operator if initial_operator is not None else config.default_operator
    if sink is None and config.debug_rules:
        sink = StructlogSink()
    return ActorRulesEngine.create(operator, sink=sink)


create_rules_engine = create
