"""Segment condition matching.

Conditions are stored as JSON tagged predicates:

    {"rule": "user_in", "values": ["user-1", "user-2"]}
    {"rule": "ip_in", "values": ["10.0.0.0/8", "192.168.1.7"]}
    {"rule": "user_agent_contains", "values": ["iPhone", "Android"]}
    {"rule": "attribute_in", "attribute": "plan", "values": ["premium"]}
    {"rule": "attribute_not_in", "attribute": "country", "values": ["US"]}
    {"rule": "attribute_gte", "attribute": "age", "value": 18}
    {"rule": "attribute_lte", "attribute": "age", "value": 65}
    {"rule": "attribute_exists", "attribute": "beta"}
    {"rule": "all", "conditions": [...]}
    {"rule": "any", "conditions": [...]}
    {"rule": "not", "condition": {...}}

Anything that does not parse, names an unknown rule, lacks the operands its
rule needs, or cannot be compared evaluates to False. A broken segment must
never switch a flag on.
"""
import ipaddress
import math
from datetime import datetime
import structlog
from pydantic import BaseModel, Field, ValidationError
from typing import Any, Callable, Dict, Iterable, List, Optional

from flaglab.schemas.flags import EvaluationContext, SegmentSnapshot

logger = structlog.get_logger()

MAX_DEPTH = 8

ATTRIBUTE_RULES = {"attribute_in", "attribute_not_in", "attribute_gte", "attribute_lte", "attribute_exists"}
NUMERIC_RULES = {"attribute_gte", "attribute_lte"}
VALUE_LIST_RULES = {"user_in", "ip_in", "user_agent_contains", "attribute_in", "attribute_not_in"}
GROUP_RULES = {"all", "any"}


class Condition(BaseModel):
    """Parsed tagged predicate: a rule kind plus its operands."""

    rule: str
    values: List[Any] = Field(default_factory=list)
    attribute: Optional[str] = None
    value: Any = None
    conditions: List["Condition"] = Field(default_factory=list)
    condition: Optional["Condition"] = None


Condition.model_rebuild()


class InvalidCondition(ValueError):
    """Raised while parsing a predicate that cannot be evaluated."""


class UnknownRule(InvalidCondition):
    """Raised while parsing a predicate that names an unsupported rule."""


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _ip_matches(address: Optional[str], candidates: Iterable[Any]) -> bool:
    if not address:
        return False
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    for candidate in candidates:
        try:
            network = ipaddress.ip_network(str(candidate), strict=False)
        except ValueError:
            continue
        if ip.version == network.version and ip in network:
            return True
    return False


class SegmentEvaluator:
    """Evaluates segment conditions against a user id and request context."""

    def __init__(self):
        self._rules: Dict[str, Callable[[Condition, Optional[str], EvaluationContext, int], bool]] = {
            "user_in": self._user_in,
            "ip_in": self._ip_in,
            "user_agent_contains": self._user_agent_contains,
            "attribute_in": self._attribute_in,
            "attribute_not_in": self._attribute_not_in,
            "attribute_gte": self._attribute_gte,
            "attribute_lte": self._attribute_lte,
            "attribute_exists": self._attribute_exists,
            "all": self._all,
            "any": self._any,
            "not": self._not,
        }

    @property
    def rule_kinds(self) -> List[str]:
        return sorted(self._rules)

    def parse(self, conditions: Any) -> Condition:
        """
        Parse and check a raw predicate, including nested ones.

        Raises:
            pydantic.ValidationError: If the payload has the wrong shape
            UnknownRule: If any rule kind is not supported
            InvalidCondition: If a rule lacks its operands or nesting is
                deeper than MAX_DEPTH
        """
        condition = Condition.model_validate(conditions)
        self._check_rules(condition, 0)
        return condition

    def _check_rules(self, condition: Condition, depth: int) -> None:
        if depth > MAX_DEPTH:
            raise InvalidCondition(f"Segment conditions nest deeper than {MAX_DEPTH} levels")
        if condition.rule not in self._rules:
            raise UnknownRule(
                f"Unknown segment rule: {condition.rule} (expected one of: {', '.join(self.rule_kinds)})"
            )
        self._check_operands(condition)
        for child in condition.conditions:
            self._check_rules(child, depth + 1)
        if condition.condition is not None:
            self._check_rules(condition.condition, depth + 1)

    def _check_operands(self, condition: Condition) -> None:
        rule = condition.rule
        if rule in ATTRIBUTE_RULES and not condition.attribute:
            raise InvalidCondition(f"Rule {rule} requires an attribute")
        if rule in NUMERIC_RULES and _as_float(condition.value) is None:
            raise InvalidCondition(f"Rule {rule} requires a numeric value")
        if rule in VALUE_LIST_RULES and not condition.values:
            raise InvalidCondition(f"Rule {rule} requires at least one value")
        if rule in GROUP_RULES and not condition.conditions:
            raise InvalidCondition(f"Rule {rule} requires at least one nested condition")
        if rule == "not" and condition.condition is None:
            raise InvalidCondition("Rule not requires a nested condition")

    def matches(
        self,
        conditions: Any,
        user_id: Optional[str] = None,
        context: Optional[EvaluationContext] = None
    ) -> bool:
        """
        Check whether a user and context satisfy a segment predicate.

        Never raises: malformed or unknown predicates are logged and treated
        as no match.
        """
        if not conditions:
            return False

        try:
            condition = self.parse(conditions)
        except ValidationError as e:
            logger.warning("segment_conditions_invalid", error_count=e.error_count())
            return False
        except InvalidCondition as e:
            logger.warning("segment_conditions_invalid", error=str(e))
            return False

        return self._evaluate(condition, user_id, context or EvaluationContext(), 0)

    def first_match(
        self,
        segments: Iterable[SegmentSnapshot],
        user_id: Optional[str] = None,
        context: Optional[EvaluationContext] = None
    ) -> Optional[SegmentSnapshot]:
        """Return the highest-priority active segment that matches, if any."""
        for segment in order_segments(segments):
            if self.matches(segment.conditions, user_id, context):
                return segment
        return None

    def _evaluate(self, condition: Condition, user_id: Optional[str], context: EvaluationContext, depth: int) -> bool:
        if depth > MAX_DEPTH:
            logger.warning("segment_conditions_too_deep", max_depth=MAX_DEPTH)
            return False

        handler = self._rules.get(condition.rule)
        if handler is None:
            logger.warning("segment_rule_unknown", rule=condition.rule)
            return False

        try:
            return bool(handler(condition, user_id, context, depth))
        except (TypeError, ValueError) as e:
            logger.warning("segment_rule_failed", rule=condition.rule, error=str(e))
            return False

    # Rule handlers

    def _user_in(self, condition, user_id, context, depth):
        return user_id is not None and user_id in {str(v) for v in condition.values}

    def _ip_in(self, condition, user_id, context, depth):
        return _ip_matches(context.ip_address, condition.values)

    def _user_agent_contains(self, condition, user_id, context, depth):
        if not context.user_agent:
            return False
        agent = context.user_agent.lower()
        return any(str(v).lower() in agent for v in condition.values if v)

    def _attribute_in(self, condition, user_id, context, depth):
        if not condition.attribute or condition.attribute not in context.attributes:
            return False
        actual = context.attributes[condition.attribute]
        return str(actual) in {str(v) for v in condition.values}

    def _attribute_not_in(self, condition, user_id, context, depth):
        if not condition.attribute or condition.attribute not in context.attributes:
            return False
        actual = context.attributes[condition.attribute]
        return str(actual) not in {str(v) for v in condition.values}

    def _attribute_gte(self, condition, user_id, context, depth):
        actual = _as_float(context.attributes.get(condition.attribute)) if condition.attribute else None
        expected = _as_float(condition.value)
        return actual is not None and expected is not None and actual >= expected

    def _attribute_lte(self, condition, user_id, context, depth):
        actual = _as_float(context.attributes.get(condition.attribute)) if condition.attribute else None
        expected = _as_float(condition.value)
        return actual is not None and expected is not None and actual <= expected

    def _attribute_exists(self, condition, user_id, context, depth):
        return bool(condition.attribute) and context.attributes.get(condition.attribute) is not None

    def _all(self, condition, user_id, context, depth):
        # An empty conjunction would match everyone
        if not condition.conditions:
            return False
        return all(self._evaluate(c, user_id, context, depth + 1) for c in condition.conditions)

    def _any(self, condition, user_id, context, depth):
        return any(self._evaluate(c, user_id, context, depth + 1) for c in condition.conditions)

    def _not(self, condition, user_id, context, depth):
        if condition.condition is None:
            return False
        inner = condition.condition
        # A malformed inner rule evaluates to False; negated it would match everyone
        if not self._is_well_formed(inner, depth + 1):
            return False
        return not self._evaluate(inner, user_id, context, depth + 1)

    def _is_well_formed(self, condition: Condition, depth: int) -> bool:
        try:
            self._check_rules(condition, depth)
        except InvalidCondition as e:
            logger.warning("segment_conditions_invalid", rule=condition.rule, error=str(e))
            return False
        return True


def order_segments(segments: Iterable[SegmentSnapshot]) -> List[SegmentSnapshot]:
    """
    Active segments in evaluation order.

    Priority descending, then creation time, then the order supplied.
    Segments without a creation time sort after dated ones of equal priority.
    """
    active = [s for s in segments if s.is_active]

    def sort_key(item):
        position, segment = item
        created = segment.created_at
        return (-segment.priority, created is None, created or datetime.min, position)

    return [segment for _, segment in sorted(enumerate(active), key=sort_key)]
