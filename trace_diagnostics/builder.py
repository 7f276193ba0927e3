"""Builds the trace Model from raw trace-event records."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from trace_diagnostics.errors import TraceFormatError
from trace_diagnostics.events import (
    PHASE_ASYNC_BEGIN,
    PHASE_ASYNC_END,
    PHASE_ASYNC_STEP,
    PHASE_BEGIN,
    PHASE_COMPLETE,
    PHASE_END,
    PHASE_INSTANT,
    PHASE_METADATA,
    PHASE_OBJECT_CREATED,
    PHASE_OBJECT_DELETED,
    PHASE_OBJECT_SNAPSHOT,
    RawEvent,
    extract_trace_events,
    parse_event
)
from trace_diagnostics.model import (
    AsyncSlice,
    InstantEvent,
    Model,
    ObjectInstance,
    ObjectReference,
    Slice
)
from trace_diagnostics.registry import TypeRegistry, default_type_registry

logger = logging.getLogger(__name__)

# Float slack when checking that a child slice fits inside its parent.
_NESTING_EPSILON_MS = 1e-6

# A snapshot arg made only of these keys is a reference to another object.
_REFERENCE_KEYS = {"id_ref", "scope"}


class ObjectModelBuilder:
    """
    Single-pass importer from trace events to a Model.

    Events are consumed in input order. Per (pid, tid) a stack matches B/E
    pairs. Per (scope, id) every instance seen so far is kept in creation
    order; an object event goes to the instance whose lifetime contains its
    timestamp, and lifetimes under one key never overlap.
    """

    def __init__(self, type_registry: TypeRegistry | None = None):
        self.type_registry = type_registry or default_type_registry()
        self._handlers = {
            PHASE_BEGIN: self._on_begin,
            PHASE_END: self._on_end,
            PHASE_COMPLETE: self._on_complete,
            PHASE_OBJECT_CREATED: self._on_object_created,
            PHASE_OBJECT_SNAPSHOT: self._on_object_snapshot,
            PHASE_OBJECT_DELETED: self._on_object_deleted,
            PHASE_METADATA: self._on_metadata
        }
        for phase in PHASE_INSTANT:
            self._handlers[phase] = self._on_instant
        for phase in PHASE_ASYNC_BEGIN:
            self._handlers[phase] = self._on_async_begin
        for phase in PHASE_ASYNC_END:
            self._handlers[phase] = self._on_async_end
        for phase in PHASE_ASYNC_STEP:
            self._handlers[phase] = self._on_async_step

    def ingest(self, trace_contents: Any) -> Model:
        """
        Build a Model from a loaded trace.

        Args:
            trace_contents: A list of trace events, or an object with a
                ``traceEvents`` list

        Raises:
            TraceFormatError: The trace as a whole is unusable

        Returns:
            The populated Model
        """
        records, metadata = extract_trace_events(trace_contents)
        self._reset(Model(metadata=dict(metadata)))

        parsed = 0
        for index, record in enumerate(records):
            try:
                event = parse_event(record)
            except ValueError as exc:
                self._warn("parse_error", f"Dropped record {index}: {exc}")
                continue
            parsed += 1
            handler = self._handlers.get(event.phase)
            if handler is None:
                self._warn("unsupported_phase", f"Ignored {event.name!r} with phase {event.phase!r}")
                continue
            handler(event)

        if records and parsed == 0:
            raise TraceFormatError(f"None of the {len(records)} trace records could be parsed")

        self._finalize()
        model = self._model
        if model.import_warnings:
            logger.info(
                "Imported %d records with %d warnings",
                parsed,
                len(model.import_warnings)
            )
        return model

    def _reset(self, model: Model) -> None:
        self._model = model
        self._open_slices: dict[tuple[int, int], list[Slice]] = defaultdict(list)
        self._open_async: dict[tuple, list[AsyncSlice]] = defaultdict(list)
        self._instances_by_key: dict[tuple[str, str], list[ObjectInstance]] = defaultdict(list)
        self._next_instance_id = 1

    def _warn(self, warning_type: str, message: str) -> None:
        logger.debug("%s: %s", warning_type, message)
        self._model.add_warning(warning_type, message)

    def _thread(self, event: RawEvent):
        return self._model.get_or_create_process(event.pid).get_or_create_thread(event.tid)

    # Thread slices

    def _on_begin(self, event: RawEvent) -> None:
        self._model.update_bounds(event.ts_ms)
        new_slice = Slice(
            name=event.name,
            category=event.category,
            start=event.ts_ms,
            args=dict(event.args),
            pid=event.pid,
            tid=event.tid
        )
        self._thread(event).slices.append(new_slice)
        self._open_slices[(event.pid, event.tid)].append(new_slice)

    def _on_end(self, event: RawEvent) -> None:
        stack = self._open_slices.get((event.pid, event.tid))
        if not stack:
            self._warn(
                "unmatched_end",
                f"E event {event.name!r} on {event.pid}:{event.tid} has no matching B"
            )
            return
        self._model.update_bounds(event.ts_ms)
        open_slice = stack.pop()
        if event.name and open_slice.name and event.name != open_slice.name:
            self._warn(
                "mismatched_end",
                f"E event {event.name!r} closed slice {open_slice.name!r}"
            )
        if event.ts_ms < open_slice.start:
            self._warn("negative_duration", f"Slice {open_slice.name!r} ends before it starts")
            open_slice.duration = 0.0
        else:
            open_slice.duration = event.ts_ms - open_slice.start
        open_slice.args.update(event.args)

    def _on_complete(self, event: RawEvent) -> None:
        duration = max(event.duration_ms, 0.0)
        self._model.update_bounds(event.ts_ms)
        self._model.update_bounds(event.ts_ms + duration)
        self._thread(event).slices.append(
            Slice(
                name=event.name,
                category=event.category,
                start=event.ts_ms,
                duration=duration,
                args=dict(event.args),
                pid=event.pid,
                tid=event.tid
            )
        )

    def _on_instant(self, event: RawEvent) -> None:
        self._model.update_bounds(event.ts_ms)
        self._thread(event).instant_events.append(
            InstantEvent(
                name=event.name,
                category=event.category,
                start=event.ts_ms,
                args=dict(event.args),
                pid=event.pid,
                tid=event.tid
            )
        )

    # Async slices

    def _async_key(self, event: RawEvent) -> tuple | None:
        if event.id is None:
            self._warn("async_without_id", f"Async event {event.name!r} has no id")
            return None
        return (event.pid, event.category, event.name, event.id)

    def _on_async_begin(self, event: RawEvent) -> None:
        key = self._async_key(event)
        if key is None:
            return
        self._model.update_bounds(event.ts_ms)
        async_slice = AsyncSlice(
            name=event.name,
            category=event.category,
            start=event.ts_ms,
            args=dict(event.args),
            pid=event.pid,
            id=event.id,
            start_tid=event.tid
        )
        self._model.get_or_create_process(event.pid).async_slices.append(async_slice)
        self._open_async[key].append(async_slice)

    def _on_async_end(self, event: RawEvent) -> None:
        key = self._async_key(event)
        if key is None:
            return
        stack = self._open_async.get(key)
        if not stack:
            self._warn("unmatched_async_end", f"Async end {event.name!r} id={event.id} has no begin")
            return
        self._model.update_bounds(event.ts_ms)
        async_slice = stack.pop()
        async_slice.duration = max(event.ts_ms - async_slice.start, 0.0)
        async_slice.args.update(event.args)

    def _on_async_step(self, event: RawEvent) -> None:
        key = self._async_key(event)
        if key is None:
            return
        stack = self._open_async.get(key)
        if not stack:
            self._warn("unmatched_async_step", f"Async step {event.name!r} id={event.id} has no begin")
            return
        self._model.update_bounds(event.ts_ms)
        stack[-1].steps.append({"ts": event.ts_ms, "phase": event.phase, "args": dict(event.args)})

    # Objects

    def _instance_at(self, key: tuple[str, str], ts: float) -> ObjectInstance | None:
        for instance in reversed(self._instances_by_key.get(key, [])):
            if instance.is_alive_at(ts):
                return instance
        return None

    def _create_instance(self, event: RawEvent, explicit: bool) -> ObjectInstance | None:
        registration = self.type_registry.lookup(event.name)
        try:
            instance = registration.instance_factory(
                instance_id=self._next_instance_id,
                type_name=event.name,
                scope=event.object_scope,
                id=event.id,
                pid=event.pid,
                category=event.category,
                creation_ts=event.ts_ms,
                creation_ts_was_explicit=explicit
            )
        except (ValueError, TypeError, AttributeError) as exc:
            self._warn("bad_object", f"Could not create {event.name} {event.id}: {exc}")
            return None
        self._next_instance_id += 1
        self._model.instances[instance.instance_id] = instance
        self._model.get_or_create_process(event.pid).instance_ids.append(instance.instance_id)
        self._instances_by_key[(event.object_scope, event.id)].append(instance)
        return instance

    def _on_object_created(self, event: RawEvent) -> None:
        self._model.update_bounds(event.ts_ms)
        instances = self._instances_by_key.get((event.object_scope, event.id), [])
        existing = instances[-1] if instances else None
        if existing is not None and existing.deletion_ts is None:
            previous_end = instances[-2].deletion_ts if len(instances) > 1 else None
            if (
                not existing.creation_ts_was_explicit
                and event.ts_ms <= existing.creation_ts
                and (previous_end is None or event.ts_ms >= previous_end)
            ):
                existing.creation_ts = event.ts_ms
                existing.creation_ts_was_explicit = True
                return
            last_ts = existing.snapshots[-1].ts if existing.snapshots else existing.creation_ts
            if event.ts_ms <= last_ts:
                self._warn(
                    "object_recreated",
                    f"{event.name} {event.id} created at {event.ts_ms} while still alive"
                )
                return
            self._warn(
                "object_recreated",
                f"{event.name} {event.id} recreated without delete; closing previous instance"
            )
            existing.deletion_ts = event.ts_ms
        elif existing is not None and event.ts_ms < existing.deletion_ts:
            self._warn(
                "object_recreated",
                f"{event.name} {event.id} created at {event.ts_ms} before its previous instance was deleted"
            )
            return
        self._create_instance(event, explicit=True)

    def _on_object_snapshot(self, event: RawEvent) -> None:
        self._model.update_bounds(event.ts_ms)
        key = (event.object_scope, event.id)
        instance = self._instance_at(key, event.ts_ms)
        if instance is None:
            instances = self._instances_by_key.get(key)
            last = instances[-1] if instances else None
            if last is not None and (last.deletion_ts is None or event.ts_ms < last.deletion_ts):
                self._warn(
                    "snapshot_out_of_order",
                    f"Snapshot of {event.name} {event.id} at {event.ts_ms} is outside every instance lifetime"
                )
                return
            instance = self._create_instance(event, explicit=False)
            if instance is None:
                return
        elif event.name and event.name != instance.type_name:
            self._warn(
                "type_mismatch",
                f"Snapshot {event.name} for {instance.type_name} {instance.id}"
            )

        snapshot_args = event.args.get("snapshot", event.args)
        if not isinstance(snapshot_args, dict):
            snapshot_args = dict(event.args)
        registration = self.type_registry.lookup(instance.type_name)
        try:
            snapshot = registration.snapshot_factory(
                instance_id=instance.instance_id,
                ts=event.ts_ms,
                args=dict(snapshot_args)
            )
        except (ValueError, TypeError, AttributeError) as exc:
            self._warn(
                "bad_snapshot",
                f"Dropped snapshot of {instance.type_name} {instance.id} at {event.ts_ms}: {exc}"
            )
            return
        try:
            instance.add_snapshot(snapshot)
        except ValueError as exc:
            self._warn("snapshot_out_of_order", str(exc))

    def _on_object_deleted(self, event: RawEvent) -> None:
        instances = self._instances_by_key.get((event.object_scope, event.id))
        instance = instances[-1] if instances else None
        if instance is None or instance.deletion_ts is not None:
            self._warn("unmatched_delete", f"Delete for {event.name} {event.id} with no live instance")
            return
        last_ts = instance.snapshots[-1].ts if instance.snapshots else None
        if event.ts_ms < instance.creation_ts or (last_ts is not None and event.ts_ms <= last_ts):
            self._warn(
                "delete_before_snapshot",
                f"Delete for {event.name} {event.id} at {event.ts_ms} is not after its last snapshot"
            )
            return
        self._model.update_bounds(event.ts_ms)
        instance.deletion_ts = event.ts_ms

    # Metadata

    def _on_metadata(self, event: RawEvent) -> None:
        process = self._model.get_or_create_process(event.pid)
        if event.name == "process_name":
            process.name = event.args.get("name")
        elif event.name == "process_sort_index":
            process.sort_index = event.args.get("sort_index")
        elif event.name in ("thread_name", "thread_sort_index"):
            if event.tid is None:
                self._warn("metadata_without_tid", f"{event.name} without tid for pid {event.pid}")
                return
            thread = process.get_or_create_thread(event.tid)
            if event.name == "thread_name":
                thread.name = event.args.get("name")
            else:
                thread.sort_index = event.args.get("sort_index")

    # Finalization

    def _finalize(self) -> None:
        model = self._model
        end_ts = model.max_ts if model.max_ts is not None else 0.0

        for stack in self._open_slices.values():
            for open_slice in stack:
                open_slice.duration = max(end_ts - open_slice.start, 0.0)
                open_slice.did_not_finish = True
                self._warn("slice_not_finished", f"Slice {open_slice.name!r} closed at trace end")
        for stack in self._open_async.values():
            for async_slice in stack:
                async_slice.duration = max(end_ts - async_slice.start, 0.0)
                async_slice.did_not_finish = True
                self._warn("async_not_finished", f"Async slice {async_slice.name!r} closed at trace end")

        for thread in model.iter_threads():
            _build_slice_forest(thread.slices)
            thread.instant_events.sort(key=lambda e: e.start)
        for process in model.processes.values():
            process.async_slices.sort(key=lambda s: s.start)

        self._resolve_object_references()

    def _resolve_object_references(self) -> None:
        def resolve(value, ts: float, scope: str):
            if isinstance(value, dict):
                if "id_ref" in value and set(value) <= _REFERENCE_KEYS:
                    ref_scope = str(value.get("scope", scope))
                    candidate = self._instance_at((ref_scope, str(value["id_ref"])), ts)
                    if candidate is not None:
                        return ObjectReference(candidate.instance_id, ts)
                    return value
                return {key: resolve(item, ts, scope) for key, item in value.items()}
            if isinstance(value, list):
                return [resolve(item, ts, scope) for item in value]
            return value

        for instance in self._model.instances.values():
            for snapshot in instance.snapshots:
                snapshot.args = resolve(snapshot.args, snapshot.ts, instance.scope)


def _build_slice_forest(slices: list[Slice]) -> None:
    """Sort a thread's slices and link each to the innermost enclosing slice."""
    ordered = sorted(enumerate(slices), key=lambda item: (item[1].start, -item[1].duration, item[0]))
    slices[:] = [item[1] for item in ordered]

    stack: list[Slice] = []
    for current in slices:
        while stack:
            top = stack[-1]
            if current.start >= top.start and current.end <= top.end + _NESTING_EPSILON_MS:
                break
            stack.pop()
        if stack:
            stack[-1].add_child(current)
        stack.append(current)


def build_model(trace_contents: Any, type_registry: TypeRegistry | None = None) -> Model:
    return ObjectModelBuilder(type_registry).ingest(trace_contents)
