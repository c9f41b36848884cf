"""OData select query builder.

Serializes to the remote query-string wire format:

    Contact?$select=Id,Name&$filter=Modified gt 2024-01-01T00:00:00Z&$orderby=Name asc&$top=10
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Multi-character operators must be matched before their prefixes
OPERATOR_TOKENS: dict[str, str] = {
    "!=": "ne",
    "<=": "le",
    ">=": "ge",
    "=": "eq",
    ">": "gt",
    "<": "lt",
}


@dataclass
class Condition:
    """A single filter condition."""

    field: str
    operator: str
    value: Any

    def render(self) -> str:
        operator = OPERATOR_TOKENS.get(self.operator, self.operator)
        return f"{self.field} {operator} {self.value}"


@dataclass
class SelectQuery:
    """Buildable query against one remote object type.

    Attributes:
        object_type: Remote entity set name.
        fields: Selected fields in insertion order (empty selects everything).
        order: Field to direction ("asc"/"desc") mapping.
        limit: Optional $top value.
    """

    object_type: str
    fields: list[str] = field(default_factory=list)
    order: dict[str, str] = field(default_factory=dict)
    limit: int | None = None
    conditions: list[Condition | str] = field(default_factory=list)

    def set_fields(self, fields: list[str]) -> None:
        self.fields = []
        for name in fields:
            self.add_field(name)

    def add_field(self, name: str) -> None:
        """Add a selected field unless it is already selected."""
        if name and name not in self.fields:
            self.fields.append(name)

    def add_condition(self, field_name: str, value: Any, operator: str = "=") -> SelectQuery:
        """Add a filter condition.

        A list value becomes an IN condition with quoted members.

        Args:
            field_name: Remote field to filter on.
            value: Literal value, rendered as given.
            operator: One of =, !=, <, >, <=, >= or IN.

        Returns:
            The query, for chaining.
        """
        if isinstance(value, list | tuple | set):
            value = "(" + ",".join(f"'{item}'" for item in value) + ")"
            if operator == "=":
                operator = "IN"
        self.conditions.append(Condition(field_name, operator, value))
        return self

    def add_built_condition(self, condition: str) -> None:
        """Add a raw filter clause."""
        self.conditions.append(condition)

    def remove_conditions_for_field(self, field_name: str) -> SelectQuery:
        self.conditions = [
            c for c in self.conditions if not (isinstance(c, Condition) and c.field == field_name)
        ]
        return self

    def add_order(self, field_name: str, direction: str = "asc") -> None:
        self.order[field_name] = direction

    def set_limit(self, limit: int | None) -> None:
        self.limit = limit

    def __str__(self) -> str:
        query = f"{self.object_type}?"
        query += "$select=" + (",".join(self.fields) if self.fields else "*")

        if self.conditions:
            where = [c.render() if isinstance(c, Condition) else c for c in self.conditions]
            query += "&$filter=" + " and ".join(where)

        if self.order:
            query += "&$orderby=" + ", ".join(
                f"{name} {direction}" for name, direction in self.order.items()
            )

        if self.limit:
            query += f"&$top={int(self.limit)}"

        return query
