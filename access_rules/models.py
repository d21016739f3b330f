"""
Rule data models for the access rules engine.
"""

from typing import Any, Callable, Dict, Generic, List, NamedTuple, Optional, TypeVar
from dataclasses import dataclass, field
from enum import Enum

from shared.errors import InvalidOperatorError

Ctx = TypeVar("Ctx")


class _ParsableOperator(str, Enum):
    """String enum that accepts case-insensitive names."""

    @classmethod
    def parse(cls, value: Any) -> "_ParsableOperator":
        """Coerce ``value`` into a member or raise ``InvalidOperatorError``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                pass
        raise InvalidOperatorError(value, [member.value for member in cls])


class LogicalOperator(_ParsableOperator):
    """How a node combines its self term with its OR-children."""
    AND = "AND"
    OR = "OR"


class AggregateOperator(_ParsableOperator):
    """Existential (ANY) or universal (ALL) membership over a collection."""
    ANY = "ANY"
    ALL = "ALL"


class RuleResult(NamedTuple):
    """Outcome of a single rule: ``(True, None)`` or ``(False, reason)``."""
    passed: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "RuleResult":
        return cls(True, None)

    @classmethod
    def fail(cls, reason: str) -> "RuleResult":
        return cls(False, reason)


@dataclass(frozen=True)
class Rule(Generic[Ctx]):
    """Named boolean test over a context.

    ``handler`` returns a ``RuleResult`` (or a ``(passed, reason)`` tuple); a
    bare ``bool`` is accepted too and gets the generic failure reason. Use
    ``create_rule`` to adapt a boolean test with a name. Rules hold no
    per-evaluation state and can be attached to any number of engines.
    """
    name: str
    handler: Callable[[Ctx], RuleResult]

    def evaluate(self, context: Ctx) -> RuleResult:
        result = self.handler(context)
        if isinstance(result, bool):
            passed, reason = result, None
        else:
            passed, reason = result
        if passed:
            return RuleResult.ok()
        return RuleResult.fail(reason or f"Rule {self.name} failed validation")


@dataclass
class Account:
    """Account the actor authenticated as."""
    id: str
    role: str


@dataclass
class TokenClaims:
    """Claims carried by the actor's access token."""
    accessor_source: str = "User"
    scopes: List[str] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)
    tenant_id: Optional[str] = None


@dataclass
class AuthenticatedActor:
    """Authenticated actor with account details and token claims."""
    account: Account
    claims: TokenClaims = field(default_factory=TokenClaims)


@dataclass
class RuleFailure:
    """A rule that failed during evaluation."""
    rule: str
    reason: str
    depth: int = 0


@dataclass
class EvaluationResult:
    """Result of rule evaluation."""
    allowed: bool
    reason: Optional[str] = None
    failures: List[RuleFailure] = field(default_factory=list)
    first_failures: Dict[int, RuleFailure] = field(default_factory=dict)
    evaluation_time_ms: float = 0.0
