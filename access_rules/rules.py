"""
Rule factories for tenant, role, scope and permission checks.

Every factory reads the context through a dotted field path, so the same
rules work against ``AuthenticatedActor`` instances, plain dicts, or any
object exposing the fields as attributes. A missing field resolves to
``None`` and the rule fails with a reason instead of raising.
"""

from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Union

from .models import AggregateOperator, Rule, RuleResult

TENANT_FIELD = "claims.tenant_id"
ROLE_FIELD = "account.role"
SCOPES_FIELD = "claims.scopes"
PERMISSIONS_FIELD = "claims.permissions"


def resolve_field(context: Any, path: str) -> Any:
    """Get a (possibly nested) field value from the context."""
    value = context
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def _as_collection(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)):
        return [value]
    try:
        return list(value)
    except TypeError:
        return [value]


def _literals(values: Iterable[str]) -> List[str]:
    """Copy rule literals; a lone string is one literal, not its characters."""
    if isinstance(values, (str, bytes)):
        return [values]
    return list(values)


def _aggregate(expected: List[str], actual: List[Any], operator: AggregateOperator) -> bool:
    if operator == AggregateOperator.ANY:
        return any(item in actual for item in expected)
    return all(item in actual for item in expected)


def create_rule(name: str, predicate_fn: Callable[[Any], bool]) -> Rule:
    """Adapt a boolean test into a rule with a generic failure reason."""

    def handler(context: Any) -> RuleResult:
        if predicate_fn(context):
            return RuleResult.ok()
        return RuleResult.fail(f"Rule {name} failed validation")

    return Rule(name, handler)


def tenant_rule(tenant: str, field: str = TENANT_FIELD) -> Rule:
    """Context tenant must equal ``tenant``."""

    def handler(context: Any) -> RuleResult:
        actual = resolve_field(context, field)
        if actual is not None and actual == tenant:
            return RuleResult.ok()
        return RuleResult.fail(f"Tenant {actual} does not match {tenant}")

    return Rule("tenant", handler)


def role_rule(roles: Iterable[str], field: str = ROLE_FIELD) -> Rule:
    """Context role must be one of ``roles``."""
    allowed = _literals(roles)

    def handler(context: Any) -> RuleResult:
        actual = resolve_field(context, field)
        if actual is not None and actual in allowed:
            return RuleResult.ok()
        return RuleResult.fail(f"Role {actual} was not included in {allowed}")

    return Rule("role", handler)


def _membership_rule(
    name: str,
    expected: Iterable[str],
    operator: Union[AggregateOperator, str],
    field: str,
) -> Rule:
    required = _literals(expected)
    aggregate = AggregateOperator.parse(operator)

    def handler(context: Any) -> RuleResult:
        actual = _as_collection(resolve_field(context, field))
        if _aggregate(required, actual, aggregate):
            return RuleResult.ok()
        return RuleResult.fail(
            f"Claims {name} {actual} did not have {aggregate.value} necessary {name} {required}"
        )

    return Rule(name, handler)


def scope_rule(
    scopes: Iterable[str],
    operator: Union[AggregateOperator, str] = AggregateOperator.ALL,
    field: str = SCOPES_FIELD,
) -> Rule:
    """ANY/ALL of ``scopes`` must be present in the context scopes."""
    return _membership_rule("scopes", scopes, operator, field)


def permission_rule(
    permissions: Iterable[str],
    operator: Union[AggregateOperator, str] = AggregateOperator.ALL,
    field: str = PERMISSIONS_FIELD,
) -> Rule:
    """ANY/ALL of ``permissions`` must be present in the context permissions."""
    return _membership_rule("permissions", permissions, operator, field)
