from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .constants import NOT_DEFINED, UNREGISTERED_DRIVER

@dataclass
class NormalizedGuide:
    guide_number: str
    origin: str = NOT_DEFINED
    destination: str = NOT_DEFINED
    sub_destination: str = ""
    timestamp: Optional[datetime] = None
    raw_record: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guideNumber": self.guide_number,
            "origin": self.origin,
            "destination": self.destination,
            "subDestination": self.sub_destination,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "rawRecord": dict(self.raw_record),
        }

ReconciliationKey = Tuple[str, str]

@dataclass
class GuideMatch:
    key: ReconciliationKey
    guide_number: str
    sub_destination: str
    origin_record: NormalizedGuide
    destination_record: NormalizedGuide

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": list(self.key),
            "guideNumber": self.guide_number,
            "subDestination": self.sub_destination,
            "originRecord": self.origin_record.to_dict(),
            "destinationRecord": self.destination_record.to_dict(),
        }

@dataclass
class ReconciliationResult:
    matches: List[GuideMatch] = field(default_factory=list)
    missing_in_destination: List[NormalizedGuide] = field(default_factory=list)
    missing_in_origin: List[NormalizedGuide] = field(default_factory=list)
    # Same-side key collisions overwritten while indexing
    duplicate_keys: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "missingInDestination": [g.to_dict() for g in self.missing_in_destination],
            "missingInOrigin": [g.to_dict() for g in self.missing_in_origin],
            "duplicateKeys": self.duplicate_keys,
        }

@dataclass
class DriverCargo:
    driver_name: Optional[str] = None
    cargo_type: Optional[str] = None
    cargo_capacity: Optional[float] = None

@dataclass
class Gap:
    minutes: float
    from_guide: str
    to_guide: str
    from_time: datetime
    to_time: datetime
    load_value: Optional[float] = None

    closing = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "closing": False,
            "minutes": self.minutes,
            "fromGuide": self.from_guide,
            "toGuide": self.to_guide,
            "fromDate": self.from_time.isoformat(),
            "toDate": self.to_time.isoformat(),
            "loadValue": self.load_value,
        }

@dataclass
class Closing:
    guide_number: str
    time: datetime
    load_value: Optional[float] = None

    closing = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "closing": True,
            "guide": self.guide_number,
            "time": self.time.isoformat(),
            "loadValue": self.load_value,
        }

Interval = Union[Gap, Closing]

@dataclass
class DriverIntervalEntry:
    driver: str = UNREGISTERED_DRIVER
    receptions: List[NormalizedGuide] = field(default_factory=list)
    intervals: List[Interval] = field(default_factory=list)
    totals_by_type: Dict[str, float] = field(default_factory=dict)
    total_transported: float = 0.0
    capacity_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Row shape consumed by the interval report."""
        return {
            "conductor": self.driver,
            "receptions": len(self.receptions),
            "receptionGuides": [g.guide_number for g in self.receptions],
            "intervals": [i.to_dict() for i in self.intervals],
            "totalsByType": [{"type": t, "total": v} for t, v in self.totals_by_type.items()],
            "totalTransported": self.total_transported,
            "capacityLabel": self.capacity_label,
        }
