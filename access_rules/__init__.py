"""
Access rules engine.

Builds trees of named rules over an identity context, combines them with
AND/OR and ANY/ALL, and evaluates them to an allow/deny decision.

Modules of interest:
- models: Rule, results, operators, and the default actor context.
- rules: Tenant, role, scope and permission rule factories.
- engine: Tree builder and the recursive evaluator.
- diagnostics: Sinks that receive evaluation diagnostics.
"""

from .diagnostics import CollectingSink, DiagnosticRecord, DiagnosticSink, NullSink, StructlogSink
from .engine import ActorRulesEngine, RulesEngine, create, create_rules_engine
from .models import (
    Account, AggregateOperator, AuthenticatedActor, EvaluationResult,
    LogicalOperator, Rule, RuleFailure, RuleResult, TokenClaims
)
from .rules import (
    create_rule, permission_rule, resolve_field, role_rule, scope_rule, tenant_rule
)

__all__ = [
    "Account",
    "ActorRulesEngine",
    "AggregateOperator",
    "AuthenticatedActor",
    "CollectingSink",
    "DiagnosticRecord",
    "DiagnosticSink",
    "EvaluationResult",
    "LogicalOperator",
    "NullSink",
    "Rule",
    "RuleFailure",
    "RuleResult",
    "RulesEngine",
    "StructlogSink",
    "TokenClaims",
    "create",
    "create_rule",
    "create_rules_engine",
    "permission_rule",
    "resolve_field",
    "role_rule",
    "scope_rule",
    "tenant_rule",
]
