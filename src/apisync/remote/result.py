"""Remote records and paginated query results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

NEXT_LINK = "@odata.nextLink"
COUNT = "@odata.count"


class ODataObject:
    """A single remote record.

    Annotation keys (``@odata.*``) are kept out of the field map.
    """

    def __init__(self, data: dict[str, Any], object_type: str | None = None) -> None:
        self.object_type = object_type
        self._fields = {k: v for k, v in data.items() if not k.startswith("@")}
        self.annotations = {k: v for k, v in data.items() if k.startswith("@")}

    def fields(self) -> dict[str, Any]:
        return dict(self._fields)

    def has_field(self, name: str) -> bool:
        return name in self._fields

    def field(self, name: str) -> Any:
        """Get a field value, None when absent."""
        return self._fields.get(name)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence in the pull queue."""
        return {"object_type": self.object_type, "fields": self.fields()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ODataObject:
        """Restore a record serialized with to_dict."""
        return cls(data["fields"], data.get("object_type"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ODataObject):
            return NotImplemented
        return self._fields == other._fields and self.object_type == other.object_type

    def __repr__(self) -> str:
        return f"ODataObject({self.object_type!r}, {self._fields!r})"


@dataclass
class SelectQueryResult:
    """One page of a query result.

    Attributes:
        records_list: Records on this page.
        next_link: URL of the next page, None on the last page.
        total_size: Total available records when the service reports a count.
    """

    records_list: list[ODataObject] = field(default_factory=list)
    next_link: str | None = None
    total_size: int | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any], object_type: str | None = None) -> SelectQueryResult:
        """Create from an OData collection response body."""
        return cls(
            records_list=[ODataObject(item, object_type) for item in data.get("value", [])],
            next_link=data.get(NEXT_LINK),
            total_size=data.get(COUNT),
        )

    @classmethod
    def create_single(cls, record: ODataObject) -> SelectQueryResult:
        """Wrap a single record as a finished result."""
        return cls(records_list=[record])

    def records(self) -> list[ODataObject]:
        return list(self.records_list)

    def size(self) -> int:
        """Total available records, falling back to this page's count."""
        if self.total_size is not None:
            return int(self.total_size)
        return len(self.records_list)

    def done(self) -> bool:
        """True when there are no further pages."""
        return not self.next_link
