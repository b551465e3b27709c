# tracing.py - Trace recorder and trace processors
# This file records traces and spans for agent runs and hands finished traces to processors.

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import Span, SpanNode, SpanType, Trace, TraceDetail
from .config import settings

logger = logging.getLogger(__name__)

class TraceProcessor(ABC):
    @abstractmethod
    async def on_trace_end(self, trace: Trace) -> None:
        """Called once for every finished trace."""
        pass

class LoggingTraceProcessor(TraceProcessor):
    """Writes a one-line summary of every finished trace."""

    async def on_trace_end(self, trace: Trace) -> None:
        duration_ms = 0.0
        if trace.ended_at:
            duration_ms = (trace.ended_at - trace.started_at).total_seconds() * 1000
        span_summary = ", ".join(f"{span.type.value}:{span.name}" for span in trace.spans)
        logger.info(
            f"Trace {trace.id} ({trace.workflow_name}) finished in {duration_ms:.0f}ms "
            f"with {len(trace.spans)} spans [{span_summary}]"
        )

class StoreTraceProcessor(TraceProcessor):
    """Persists finished traces through the persistence store."""

    def __init__(self, store):
        self.store = store

    async def on_trace_end(self, trace: Trace) -> None:
        stored = await self.store.store_trace(trace)
        if not stored:
            logger.warning(f"Trace {trace.id} was not persisted")

class TraceRecorder:
    """Creates traces and spans.

    When tracing is disabled every start call returns None and the other
    calls accept None, so callers never branch on the tracing state.
    """

    def __init__(self, processors: Optional[List[TraceProcessor]] = None,
                 disabled: Optional[bool] = None):
        self.processors = list(processors or [])
        self.disabled = settings.tracing_disabled if disabled is None else disabled

    def add_processor(self, processor: TraceProcessor):
        self.processors.append(processor)

    def start_trace(self, workflow_name: str, trace_id: Optional[str] = None,
                    group_id: Optional[str] = None, owner_id: Optional[str] = None,
                    metadata: Optional[Dict[str, Any]] = None,
                    disabled: bool = False) -> Optional[Trace]:
        if self.disabled or disabled:
            return None

        trace = Trace(
            workflow_name=workflow_name,
            group_id=group_id,
            owner_id=owner_id,
            metadata=dict(metadata or {}),
        )
        if trace_id:
            trace.id = trace_id
        logger.debug(f"Started trace {trace.id} for {workflow_name}")
        return trace

    def start_span(self, trace: Optional[Trace], span_type: SpanType, name: str,
                   data: Optional[Dict[str, Any]] = None,
                   parent: Optional[Span] = None) -> Optional[Span]:
        if trace is None:
            return None

        span = Span(
            trace_id=trace.id,
            parent_id=parent.id if parent else None,
            type=span_type,
            name=name,
            data=dict(data or {}),
        )
        trace.spans.append(span)
        return span

    def end_span(self, span: Optional[Span], result_data: Optional[Dict[str, Any]] = None):
        if span is None:
            return
        if result_data:
            span.data.update(result_data)
        span.ended_at = datetime.utcnow()

    async def end_trace(self, trace: Optional[Trace]):
        if trace is None:
            return

        trace.ended_at = datetime.utcnow()
        for span in trace.spans:
            if span.ended_at is None:
                span.ended_at = trace.ended_at

        for processor in self.processors:
            try:
                await processor.on_trace_end(trace)
            except Exception as e:
                logger.error(f"Trace processor {type(processor).__name__} failed for {trace.id}: {str(e)}")

def build_span_tree(spans: List[Span]) -> List[SpanNode]:
    """Nest spans under their parents, keeping start order at every level."""
    ordered = sorted(spans, key=lambda s: s.started_at)
    nodes = {span.id: SpanNode(span=span) for span in ordered}
    roots = []
    for span in ordered:
        node = nodes[span.id]
        parent = nodes.get(span.parent_id) if span.parent_id else None
        if parent is not None:
            parent.children.append(node)
        else:
            roots.append(node)
    return roots

def trace_detail(trace: Trace) -> TraceDetail:
    return TraceDetail(trace=trace, span_tree=build_span_tree(trace.spans))
