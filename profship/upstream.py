"""Profile upload jobs and the interface of the services that accept them."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Format(str, enum.Enum):
    """Encoding of an uploaded profile."""

    PPROF = "pprof"


@dataclass
class SampleType:
    """How the server should present one sample type of a profile."""

    units: str = ""
    aggregation: str = ""
    display_name: str = ""
    sampled: bool = False
    cumulative: bool = False

    def to_json(self) -> dict:
        """Return the JSON object for this sample type, omitting empty fields."""
        fields = (
            ("units", self.units),
            ("aggregation", self.aggregation),
            ("display-name", self.display_name),
            ("sampled", self.sampled),
            ("cumulative", self.cumulative),
        )
        return {name: value for name, value in fields if value}


@dataclass
class UploadJob:
    """One profile to be sent upstream, covering ``start_time``..``end_time``."""

    name: str
    start_time: datetime = _EPOCH
    end_time: datetime = _EPOCH
    spy_name: str = ""
    sample_rate: int = 0
    units: str = ""
    aggregation_type: str = ""
    format: Format = Format.PPROF
    profile: bytes = b""
    prev_profile: Optional[bytes] = None
    sample_type_config: Optional[dict[str, SampleType]] = None


class Upstream(Protocol):
    """A destination for profiles."""

    def upload(self, job: UploadJob) -> None: ...

    def flush(self) -> None: ...