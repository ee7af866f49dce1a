"""Query enumerations: values are the exact tokens the REST API expects."""

from enum import Enum


class FieldOperator(str, Enum):
    """Comparison operator of a field filter."""

    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    ARRAY_CONTAINS = "ARRAY_CONTAINS"
    IN = "IN"
    ARRAY_CONTAINS_ANY = "ARRAY_CONTAINS_ANY"
    NOT_IN = "NOT_IN"

    @classmethod
    def values(cls) -> list[str]:
        """Return all operator tokens."""
        return [op.value for op in cls]


class UnaryOperator(str, Enum):
    """Operator of a unary (value-less) filter."""

    IS_NAN = "IS_NAN"
    IS_NULL = "IS_NULL"
    IS_NOT_NAN = "IS_NOT_NAN"
    IS_NOT_NULL = "IS_NOT_NULL"


class CompositeOperator(str, Enum):
    """Operator joining the members of a composite filter."""

    AND = "AND"
    OR = "OR"


class Direction(str, Enum):
    """Sort direction of an ordering."""

    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"
