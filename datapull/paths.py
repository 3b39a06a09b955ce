from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum, unique
from typing import ClassVar, List, Optional, Union

from datapull.exceptions.exceptions import InvalidRangeError, ValidationError


@unique
class DatasetType(str, Enum):
    DECISIONS = "decisions"
    EVENTS = "events"

    @classmethod
    def parse(cls, value: str) -> "DatasetType":
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValidationError(
                f"Unknown dataset type {value!r}", f"Use one of: {valid}."
            )


@dataclass(frozen=True)
class Experiment:
    id: str
    key: ClassVar[str] = "experiment"

    @property
    def value(self) -> str:
        return self.id


@dataclass(frozen=True)
class Event:
    name: str
    key: ClassVar[str] = "event"

    @property
    def value(self) -> str:
        return self.name


PartitionDimension = Optional[Union[Experiment, Event]]


def parse_date(value: str) -> date:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d").date()
        # strptime also takes unpadded months and days
        if parsed.isoformat() != value:
            raise ValueError(value)
    except ValueError:
        raise ValidationError(
            f"Invalid date {value!r}", "Dates are formatted as YYYY-MM-DD."
        )
    return parsed


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive range of calendar days. An absent start makes the range empty,
    an absent end makes it a single day.
    """

    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise InvalidRangeError(self.start, self.end)

    @property
    def is_empty(self) -> bool:
        return self.start is None

    def days(self) -> List[date]:
        if self.start is None:
            return []
        end = self.end if self.end is not None else self.start
        return [
            self.start + timedelta(days=offset)
            for offset in range((end - self.start).days + 1)
        ]


def expand(start: Optional[date], end: Optional[date] = None) -> List[date]:
    return DateRange(start, end).days()


def _with_trailing_slash(path: str) -> str:
    return path.rstrip("/") + "/"


def join_path(base_path: str, relative: str) -> str:
    base_path = _with_trailing_slash(base_path)
    if not relative:
        return base_path
    return f"{base_path}{relative.strip('/')}/"


@dataclass(frozen=True)
class PathSpec:
    base_path: str
    dataset_type: Optional[DatasetType] = None
    date_range: DateRange = DateRange()
    partition: PartitionDimension = None

    @classmethod
    def create(
        cls,
        base_path: str,
        dataset_type: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        experiment: Optional[str] = None,
        event: Optional[str] = None,
    ) -> "PathSpec":
        if experiment and event:
            raise ValidationError(
                "Both an experiment and an event were given",
                "Pass either --experiment or --event, not both.",
            )
        partition: PartitionDimension = None
        if experiment:
            partition = Experiment(experiment)
        elif event:
            partition = Event(event)
        return cls(
            base_path=base_path,
            dataset_type=DatasetType.parse(dataset_type) if dataset_type else None,
            date_range=DateRange(
                parse_date(start) if start else None,
                parse_date(end) if end else None,
            ),
            partition=partition,
        )


@dataclass(frozen=True)
class PartitionPath:
    relative: str
    absolute: str


class PathBuilder:
    """
    Derives the object store locations of a partitioned dataset.

    Segments are always emitted in type, date, partition order. A segment is
    only emitted when every segment before it is present: without a dataset
    type the dates and partition are ignored, without dates the partition is.
    """

    def build(self, spec: PathSpec) -> List[PartitionPath]:
        return [
            PartitionPath(relative=relative, absolute=join_path(spec.base_path, relative))
            for relative in self._relative_paths(spec)
        ]

    @staticmethod
    def _relative_paths(spec: PathSpec) -> List[str]:
        if spec.dataset_type is None:
            return [""]
        type_segment = f"type={spec.dataset_type.value}"
        days = spec.date_range.days()
        if not days:
            return [type_segment]
        relatives = []
        for day in days:
            segments = [type_segment, f"date={day.isoformat()}"]
            if spec.partition is not None:
                segments.append(f"{spec.partition.key}={spec.partition.value}")
            relatives.append("/".join(segments))
        return relatives


def build_paths(spec: PathSpec) -> List[PartitionPath]:
    return PathBuilder().build(spec)
