"""Rule matcher - compiles a hook's rules into a predicate over request attributes.

Rules are keyed by request attribute. A structured attribute (headers, query,
object bodies) is written as a mapping of sub-field to expression and is
flattened one level into dotted paths::

    {"method": "POST",
     "headers": {"x-event": {"$in": ["push", "release"]}},
     "body": {"ref": {"$regex": "^refs/heads/"}, "size": {"$lt": 100}}}

An expression is either a bare value (equality) or a mapping of operators:

    $eq $ne            equality / inequality
    $gt $gte $lt $lte  ordering; incomparable types never match
    $in $nin           membership in a list of values
    $exists            field presence (true/false)
    $regex $options    re.search on string values; options from "imsx"
    $not               negates a nested operator mapping (or a regex string)

Paths walk mappings by key and lists by integer index. Any other segment
applied to a list is applied to each element, and the rule holds if any
resulting value satisfies it.
"""
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

from hookrunner.hooks.models import RequestSnapshot, RuleError

ATTRIBUTES = ("body", "headers", "hostname", "ip", "method", "query", "url")

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def resolve_path(data: Any, path: str) -> list[Any]:
    """All values reachable at a dotted path. Empty list means missing."""
    values = [data]
    for segment in path.split("."):
        found = []
        for value in values:
            if isinstance(value, Mapping):
                if segment in value:
                    found.append(value[segment])
            elif isinstance(value, list):
                if segment.isdigit():
                    index = int(segment)
                    if index < len(value):
                        found.append(value[index])
                else:
                    found.extend(
                        item[segment]
                        for item in value
                        if isinstance(item, Mapping) and segment in item
                    )
        values = found
        if not values:
            break
    return values


def _equals(value: Any, expected: Any) -> bool:
    if value == expected:
        return True
    return isinstance(value, list) and not isinstance(expected, list) and expected in value


def _candidates(values: list[Any]) -> list[Any]:
    """Values plus the elements of list values, for ordering and regex tests."""
    out = []
    for value in values:
        out.append(value)
        if isinstance(value, list):
            out.extend(value)
    return out


class Condition(ABC):
    """A test against the values found at one path."""

    @abstractmethod
    def matches(self, values: list[Any]) -> bool:
        ...


class Equals(Condition):
    def __init__(self, expected: Any):
        self.expected = expected

    def matches(self, values: list[Any]) -> bool:
        if not values:
            return self.expected is None
        return any(_equals(v, self.expected) for v in values)


class InSet(Condition):
    def __init__(self, options: list[Any]):
        self.options = [Equals(o) for o in options]

    def matches(self, values: list[Any]) -> bool:
        return any(o.matches(values) for o in self.options)


class Compare(Condition):
    OPS: dict[str, Callable[[Any, Any], bool]] = {
        "$gt": lambda a, b: a > b,
        "$gte": lambda a, b: a >= b,
        "$lt": lambda a, b: a < b,
        "$lte": lambda a, b: a <= b,
    }

    def __init__(self, op: str, operand: Any):
        self.op = op
        self.operand = operand
        self._fn = self.OPS[op]

    def _numeric_operand(self) -> bool:
        return isinstance(self.operand, (int, float)) and not isinstance(self.operand, bool)

    def matches(self, values: list[Any]) -> bool:
        for value in _candidates(values):
            if isinstance(value, bool) != isinstance(self.operand, bool):
                continue
            # query strings and headers only ever carry text
            if isinstance(value, str) and self._numeric_operand():
                try:
                    value = float(value)
                except ValueError:
                    continue
            try:
                if self._fn(value, self.operand):
                    return True
            except TypeError:
                continue
        return False


class Exists(Condition):
    def __init__(self, present: bool):
        self.present = present

    def matches(self, values: list[Any]) -> bool:
        return bool(values) == self.present


class Regex(Condition):
    def __init__(self, pattern: re.Pattern):
        self.pattern = pattern

    def matches(self, values: list[Any]) -> bool:
        return any(
            isinstance(v, str) and self.pattern.search(v) is not None
            for v in _candidates(values)
        )


class Not(Condition):
    def __init__(self, inner: Condition):
        self.inner = inner

    def matches(self, values: list[Any]) -> bool:
        return not self.inner.matches(values)


class AllOf(Condition):
    def __init__(self, conditions: list[Condition]):
        self.conditions = conditions

    def matches(self, values: list[Any]) -> bool:
        return all(c.matches(values) for c in self.conditions)


class FieldRule:
    """A condition bound to a dotted attribute path."""

    def __init__(self, path: str, condition: Condition):
        self.path = path
        self.condition = condition

    def test(self, data: Mapping[str, Any]) -> bool:
        return self.condition.matches(resolve_path(data, self.path))

    def __repr__(self) -> str:
        return f"FieldRule({self.path!r}, {type(self.condition).__name__})"


class Predicate:
    """Conjunction of field rules. No rules means every request matches."""

    def __init__(self, rules: list[FieldRule] | None = None):
        self.rules = rules or []

    def test(self, snapshot: RequestSnapshot | Mapping[str, Any]) -> bool:
        data = snapshot.as_context() if isinstance(snapshot, RequestSnapshot) else snapshot
        return all(rule.test(data) for rule in self.rules)

    @property
    def paths(self) -> list[str]:
        return [r.path for r in self.rules]


def _is_operator_mapping(value: Any) -> bool:
    if not isinstance(value, dict) or not value:
        return False
    keys = [k.startswith("$") for k in value]
    if any(keys) and not all(keys):
        raise RuleError(f"Cannot mix operators and fields in one expression: {sorted(value)}")
    return all(keys)


def _compile_regex(pattern: Any, options: Any = "") -> Regex:
    if not isinstance(pattern, str):
        raise RuleError(f"$regex expects a string, got {type(pattern).__name__}")
    if not isinstance(options, str):
        raise RuleError("$options expects a string")
    flags = 0
    for ch in options:
        if ch not in _REGEX_FLAGS:
            raise RuleError(f"Unsupported $options flag: {ch!r}")
        flags |= _REGEX_FLAGS[ch]
    try:
        return Regex(re.compile(pattern, flags))
    except re.error as e:
        raise RuleError(f"Invalid $regex {pattern!r}: {e}") from e


def _compile_operators(expr: dict[str, Any]) -> Condition:
    conditions: list[Condition] = []
    for op, operand in expr.items():
        if op == "$options":
            if "$regex" not in expr:
                raise RuleError("$options requires $regex")
            continue
        if op == "$eq":
            conditions.append(Equals(operand))
        elif op == "$ne":
            conditions.append(Not(Equals(operand)))
        elif op in Compare.OPS:
            if isinstance(operand, (dict, list)):
                raise RuleError(f"{op} expects a scalar operand")
            conditions.append(Compare(op, operand))
        elif op in ("$in", "$nin"):
            if not isinstance(operand, list):
                raise RuleError(f"{op} expects a list")
            cond: Condition = InSet(operand)
            conditions.append(cond if op == "$in" else Not(cond))
        elif op == "$exists":
            conditions.append(Exists(bool(operand)))
        elif op == "$regex":
            conditions.append(_compile_regex(operand, expr.get("$options", "")))
        elif op == "$not":
            if isinstance(operand, str):
                conditions.append(Not(_compile_regex(operand)))
            elif _is_operator_mapping(operand):
                conditions.append(Not(_compile_operators(operand)))
            else:
                raise RuleError("$not expects an operator mapping or a regex string")
        else:
            raise RuleError(f"Unknown operator: {op}")
    return conditions[0] if len(conditions) == 1 else AllOf(conditions)


def compile_expression(expr: Any) -> Condition:
    """Compile a bare value or an operator mapping."""
    if _is_operator_mapping(expr):
        return _compile_operators(expr)
    return Equals(expr)


def flatten_rules(rules: Mapping[str, Any]) -> dict[str, Any]:
    """Expand structured attribute rules one level into dotted paths."""
    flat: dict[str, Any] = {}
    for name, rule in rules.items():
        if name not in ATTRIBUTES:
            raise RuleError(f"Unknown rule attribute: {name}")
        if isinstance(rule, dict) and not _is_operator_mapping(rule):
            for key, sub in rule.items():
                flat[f"{name}.{key}"] = sub
            continue
        flat[name] = rule
    return flat


def compile_rules(rules: Mapping[str, Any] | None) -> Predicate:
    """Compile a hook's rules block. Raises RuleError on malformed rules."""
    if not rules:
        return Predicate()
    if not isinstance(rules, Mapping):
        raise RuleError("rules must be an object")
    return Predicate([
        FieldRule(path, compile_expression(expr))
        for path, expr in flatten_rules(rules).items()
    ])
