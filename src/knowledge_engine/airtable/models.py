"""Data models for the Airtable API and sync results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from knowledge_engine.exceptions import RecordValidationError


@dataclass
class AirtableField:
    """One column of an Airtable table."""

    id: str
    name: str
    type: str


@dataclass
class AirtableTable:
    """Table schema from the metadata API."""

    id: str
    name: str
    primary_field_id: str | None = None
    fields: list[AirtableField] = field(default_factory=list)

    @property
    def primary_field_name(self) -> str | None:
        """Name of the primary field, used as the citation location."""
        for f in self.fields:
            if f.id == self.primary_field_id:
                return f.name
        return None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "AirtableTable":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            primary_field_id=data.get("primaryFieldId"),
            fields=[
                AirtableField(id=f["id"], name=f.get("name", f["id"]), type=f.get("type", ""))
                for f in data.get("fields", [])
            ],
        )


@dataclass
class AirtableRecord:
    """One record as returned by the records API."""

    id: str
    created_time: datetime | None
    fields: dict[str, Any]

    @classmethod
    def from_api(cls, data: Any) -> "AirtableRecord":
        """Validate and parse a raw record.

        Raises:
            RecordValidationError: If the record has no id or its fields are not a mapping
        """
        if not isinstance(data, dict):
            raise RecordValidationError(f"Record is not an object: {data!r}")
        record_id = data.get("id")
        if not record_id or not isinstance(record_id, str):
            raise RecordValidationError("Record has no id")
        fields = data.get("fields", {})
        if not isinstance(fields, dict):
            raise RecordValidationError(f"Record {record_id} has malformed fields")
        return cls(
            id=record_id,
            created_time=parse_datetime(data.get("createdTime")),
            fields=fields,
        )


@dataclass
class RecordPage:
    """One page of the records API; ``offset`` is None on the last page."""

    records: list[dict[str, Any]]
    offset: str | None = None


@dataclass
class TableSyncResult:
    """Per-table outcome of a sync run."""

    name: str
    synced: int
    status: str  # success, error
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "synced": self.synced, "status": self.status}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SyncResult:
    """Aggregate outcome of one sync run."""

    success: bool = False
    tables: list[TableSyncResult] = field(default_factory=list)
    total_records: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "tables": [t.to_dict() for t in self.tables],
            "totalRecords": self.total_records,
            "errors": self.errors,
        }


@dataclass
class ReembedResult:
    updated: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class PushResult:
    success: bool
    record: AirtableRecord | None = None
    error: str | None = None


@dataclass
class DeleteResult:
    deleted: int = 0
    error: str | None = None


@dataclass
class SyncStatus:
    """What operators see for the Airtable source."""

    configured: bool
    status: dict[str, Any] | None
    tables: list[dict[str, Any]]


def parse_datetime(dt_str: str | None) -> datetime | None:
    """Parse an Airtable ISO timestamp into naive UTC."""
    if not dt_str:
        return None
    try:
        parsed = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
