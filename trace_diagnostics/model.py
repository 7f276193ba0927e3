"""Typed trace model: processes, threads, slices and object instances."""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(eq=False)
class TimedEvent:
    """Fields shared by every model event; times are in milliseconds."""

    name: str
    category: str
    start: float
    duration: float = 0.0
    args: dict = field(default_factory=dict)

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(eq=False)
class Slice(TimedEvent):
    """A named span of work on one thread; nests into a per-thread forest."""

    pid: int = 0
    tid: int = 0
    children: list["Slice"] = field(default_factory=list)
    did_not_finish: bool = False
    _parent_ref: Any = field(default=None, repr=False)

    @property
    def parent(self) -> "Slice | None":
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def is_top_level(self) -> bool:
        return self._parent_ref is None

    def add_child(self, child: "Slice") -> None:
        child._parent_ref = weakref.ref(self)
        self.children.append(child)


@dataclass(eq=False)
class AsyncSlice(TimedEvent):
    """A span keyed by (category, name, id) that may cross threads."""

    pid: int = 0
    id: str | None = None
    start_tid: int | None = None
    steps: list[dict] = field(default_factory=list)
    did_not_finish: bool = False

    @property
    def is_top_level(self) -> bool:
        return True


@dataclass(eq=False)
class InstantEvent(TimedEvent):
    pid: int = 0
    tid: int | None = None


@dataclass
class ObjectReference:
    """A snapshot argument resolved to the instance alive at ``ts``."""

    instance_id: int
    ts: float


@dataclass(eq=False)
class ObjectSnapshot:
    """The value of an object at one point in time.

    Snapshots never hold their instance directly; ``instance_id`` is a key
    into ``Model.instances``.
    """

    instance_id: int
    ts: float
    args: dict = field(default_factory=dict)

    def instance(self, model: "Model") -> "ObjectInstance":
        return model.instances[self.instance_id]


@dataclass(eq=False)
class ObjectInstance:
    """A lifetime-tracked object; owns its snapshots in timestamp order."""

    instance_id: int
    type_name: str
    scope: str
    id: str
    pid: int
    category: str
    creation_ts: float
    deletion_ts: float | None = None
    snapshots: list[ObjectSnapshot] = field(default_factory=list)
    creation_ts_was_explicit: bool = False

    def is_alive_at(self, ts: float) -> bool:
        if ts < self.creation_ts:
            return False
        return self.deletion_ts is None or ts < self.deletion_ts

    def add_snapshot(self, snapshot: ObjectSnapshot) -> None:
        if not self.is_alive_at(snapshot.ts):
            raise ValueError(
                f"Snapshot at {snapshot.ts} outside lifetime of {self.type_name} {self.id}"
            )
        if self.snapshots and snapshot.ts <= self.snapshots[-1].ts:
            raise ValueError(
                f"Snapshot at {snapshot.ts} is not after previous snapshot at {self.snapshots[-1].ts}"
            )
        self.snapshots.append(snapshot)


@dataclass(eq=False)
class GenericObjectInstance(ObjectInstance):
    """Instance whose type name has no registration."""


@dataclass
class Thread:
    tid: int
    pid: int
    name: str | None = None
    sort_index: int | None = None
    slices: list[Slice] = field(default_factory=list)
    instant_events: list[InstantEvent] = field(default_factory=list)

    @property
    def top_level_slices(self) -> list[Slice]:
        return [s for s in self.slices if s.is_top_level]


@dataclass
class Process:
    pid: int
    name: str | None = None
    sort_index: int | None = None
    threads: dict[int, Thread] = field(default_factory=dict)
    async_slices: list[AsyncSlice] = field(default_factory=list)
    instance_ids: list[int] = field(default_factory=list)

    def get_or_create_thread(self, tid: int) -> Thread:
        thread = self.threads.get(tid)
        if thread is None:
            thread = Thread(tid=tid, pid=self.pid)
            self.threads[tid] = thread
        return thread


@dataclass
class ImportWarningEntry:
    type: str
    message: str


@dataclass
class Model:
    """Everything reconstructed from one trace.

    Built once by the ObjectModelBuilder and treated as read-only afterwards.
    """

    processes: dict[int, Process] = field(default_factory=dict)
    instances: dict[int, ObjectInstance] = field(default_factory=dict)
    import_warnings: list[ImportWarningEntry] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    min_ts: float | None = None
    max_ts: float | None = None
    user_expectations: list = field(default_factory=list)

    @property
    def canonical_url(self) -> str | None:
        return self.metadata.get("url") or self.metadata.get("canonical-url")

    @property
    def duration(self) -> float:
        if self.min_ts is None or self.max_ts is None:
            return 0.0
        return self.max_ts - self.min_ts

    def get_or_create_process(self, pid: int) -> Process:
        process = self.processes.get(pid)
        if process is None:
            process = Process(pid=pid)
            self.processes[pid] = process
        return process

    def update_bounds(self, ts: float) -> None:
        if self.min_ts is None or ts < self.min_ts:
            self.min_ts = ts
        if self.max_ts is None or ts > self.max_ts:
            self.max_ts = ts

    def iter_threads(self) -> Iterator[Thread]:
        for pid in sorted(self.processes):
            process = self.processes[pid]
            for tid in sorted(process.threads):
                yield process.threads[tid]

    def iter_slices(self) -> Iterator[Slice]:
        for thread in self.iter_threads():
            yield from thread.slices

    def iter_async_slices(self) -> Iterator[AsyncSlice]:
        for pid in sorted(self.processes):
            yield from self.processes[pid].async_slices

    def top_level_slices(self) -> list[Slice]:
        """All top-level thread slices, ordered by start time."""
        slices = [s for thread in self.iter_threads() for s in thread.top_level_slices]
        slices.sort(key=lambda s: (s.start, s.pid, s.tid))
        return slices

    def instances_of_type(self, type_name: str) -> list[ObjectInstance]:
        return [
            instance
            for instance in self.instances.values()
            if instance.type_name == type_name
        ]

    def add_warning(self, warning_type: str, message: str) -> None:
        self.import_warnings.append(ImportWarningEntry(warning_type, message))
