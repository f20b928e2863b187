"""Disassembly job pipeline and its background worker.

``JobPipeline`` runs at most one disassembly job at a time and publishes
each finished job as an immutable ``Snapshot`` (result + correlation
index).  Line lookups always read the last published snapshot, so they
never wait for, or observe a half-built, in-flight job.

``PipelineWorker`` runs a pipeline behind a request queue: a dispatcher
thread answers lookups straight from the published snapshot and hands
disassembly jobs to a single decode thread.  Every request gets its own
``concurrent.futures.Future``, resolved exactly once.

Usage::

    pipeline = JobPipeline(DwarfDecoder())
    with PipelineWorker(pipeline) as worker:
        outcome = worker.submit(raw, "fw.elf").result()
        if isinstance(outcome, Rendered):
            line = worker.locate(LineQuery.from_file("/src/main.c", 42)).result()

A running decode cannot be cancelled.
"""

from __future__ import annotations

import contextlib
import queue
import threading
import time
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from rich.console import Console

from elflens.correlation import CorrelationIndex, LineQuery
from elflens.decoder import Decoder
from elflens.errors import DecodeError
from elflens.records import DisassemblyResult, build_result
from elflens.render import render_bytes

# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rendered:
    """A finished job: the rendered listing and the name of its binary."""

    content: bytes
    source_name: str

    @property
    def line_count(self) -> int:
        return self.content.count(b"\n")


@dataclass(frozen=True)
class RejectedBusy:
    """Another job was still running; nothing was done."""


@dataclass(frozen=True)
class Failed:
    """The decoder rejected the input."""

    error: DecodeError


SubmitOutcome = Rendered | RejectedBusy | Failed


@dataclass(frozen=True)
class Snapshot:
    """A published ``(result, index)`` pair."""

    result: DisassemblyResult
    index: CorrelationIndex


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class JobPipeline:
    """Single-job disassembly pipeline with snapshot publication.

    *console*, when given, receives stage timings and the busy notice.
    """

    def __init__(self, decoder: Decoder, console: Console | None = None) -> None:
        self.decoder = decoder
        self.console = console
        self._busy = False
        self._busy_lock = threading.Lock()
        self._current: Snapshot | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def current(self) -> Snapshot | None:
        """The last published snapshot, or ``None`` before the first success."""
        return self._current

    def try_accept(self) -> bool:
        """Claim the pipeline for a job; ``False`` if one is already running."""
        with self._busy_lock:
            if self._busy:
                self._log("[yellow]another disassembly is still running[/yellow]")
                return False
            self._busy = True
            return True

    def run_accepted(self, raw: bytes, source_name: str = "") -> Rendered | Failed:
        """Run a job claimed with :meth:`try_accept` and release the pipeline."""
        try:
            try:
                with self._stage("Disassemble content"):
                    instructions = self.decoder.analyze(raw)
                    result = build_result(source_name, instructions)
            except DecodeError as exc:
                self._log(f"[red]disassembly failed:[/red] {exc}")
                return Failed(exc)
            with self._stage("Build index"):
                index = CorrelationIndex.build(result)
            with self._stage("Render listing"):
                content = render_bytes(result)
            self._current = Snapshot(result=result, index=index)
            return Rendered(content=content, source_name=source_name)
        finally:
            with self._busy_lock:
                self._busy = False

    def submit(self, raw: bytes, source_name: str = "") -> SubmitOutcome:
        """Disassemble *raw* and publish it, unless a job is already running."""
        if not self.try_accept():
            return RejectedBusy()
        return self.run_accepted(raw, source_name)

    def locate(self, query: LineQuery) -> int:
        """Listing line for *query* in the published snapshot (``0`` if none)."""
        snapshot = self._current
        if snapshot is None:
            return 0
        return snapshot.index.locate(query)

    def _log(self, message: str) -> None:
        if self.console is not None:
            self.console.print(message)

    @contextlib.contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        yield
        self._log(f"[dim]{name}: {(time.perf_counter() - start) * 1000:.1f} ms[/dim]")


# ---------------------------------------------------------------------------
# Background worker
# ---------------------------------------------------------------------------


@dataclass
class _SubmitRequest:
    raw: bytes
    source_name: str
    future: Future


@dataclass
class _LocateRequest:
    query: LineQuery
    future: Future


def _resolved(value: object) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class PipelineWorker:
    """Serve a ``JobPipeline`` from background threads.

    Busy rejection is decided in the calling thread and returned as an
    already-resolved future.  Lookups are answered by the dispatcher
    thread and never queue behind a running decode.
    """

    def __init__(self, pipeline: JobPipeline) -> None:
        self.pipeline = pipeline
        self._requests: queue.Queue[_SubmitRequest | _LocateRequest | None] = queue.Queue()
        self._decode = ThreadPoolExecutor(max_workers=1, thread_name_prefix="elflens-decode")
        self._lock = threading.Lock()
        self._closed = False
        self._dispatcher = threading.Thread(
            target=self._serve, name="elflens-dispatch", daemon=True
        )
        self._dispatcher.start()

    def __enter__(self) -> PipelineWorker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def submit(self, raw: bytes, source_name: str = "") -> Future:
        """Queue a disassembly job; resolves to a ``SubmitOutcome``."""
        with self._lock:
            self._check_open()
            if not self.pipeline.try_accept():
                return _resolved(RejectedBusy())
            future: Future = Future()
            self._requests.put(_SubmitRequest(raw, source_name, future))
        return future

    def locate(self, query: LineQuery) -> Future:
        """Queue a line lookup; resolves to a listing line number."""
        with self._lock:
            self._check_open()
            future: Future = Future()
            self._requests.put(_LocateRequest(query, future))
        return future

    def close(self) -> None:
        """Finish queued requests and stop both threads."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._requests.put(None)
        self._dispatcher.join()
        self._decode.shutdown(wait=True)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("PipelineWorker is closed")

    def _serve(self) -> None:
        while True:
            request = self._requests.get()
            if request is None:
                return
            if isinstance(request, _LocateRequest):
                request.future.set_result(self.pipeline.locate(request.query))
            else:
                self._decode.submit(self._run, request)

    def _run(self, request: _SubmitRequest) -> None:
        try:
            outcome = self.pipeline.run_accepted(request.raw, request.source_name)
        except Exception as exc:
            request.future.set_exception(exc)
        else:
            request.future.set_result(outcome)
