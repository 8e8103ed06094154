# Booking entity as stored in the booking store and returned by the API
from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class Booking:
    """
    Identified by the exact slot start string the client submitted. Immutable once created, bookings are only ever removed.
    """
    id: str
    start: str
    name: str
    email: str
    phone: str = ""
    location: str = ""
    created_at: str = ""

    def to_dict(self) -> Dict[str, str]:
        record = asdict(self)
        # Stored and served with the camelCase key used by the JSON document
        record["createdAt"] = record.pop("created_at")
        return record

    def public_fields(self) -> Dict[str, str]:
        return {"id": self.id, "start": self.start, "name": self.name}

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "Booking":
        return cls(
            id=str(record["id"]),
            start=str(record["start"]),
            name=str(record["name"]),
            email=str(record["email"]),
            phone=record.get("phone") or "",
            location=record.get("location") or "",
            created_at=record.get("createdAt") or "",
        )
