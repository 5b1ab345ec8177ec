"""
Change-to-specification pipeline.

Segments a diff into changed functions, then for each function (concurrently,
bounded by a semaphore) extracts control-flow facts, checks drift against the
stored record, synthesizes a specification and emits a Lean 4 artifact.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

from ..api_models import DriftResult, SpecificationRecord
from ..cache import SpecificationCache
from ..drift.detector import DriftDetector
from ..extractors import ControlFlowExtractor
from ..generators.lean import TheoremSkeletonEmitter
from ..llm.backends import SpecificationBackend, build_backends
from ..llm.spec_generator import SpecificationSynthesizer, deterministic_specification
from ..segmenter import ChangedFileLike, DiffSegmenter
from ..sources import SourceAccessor
from ..store import SpecificationStore
from .config import PipelineConfig
from .models import ChangeType, ControlFlowFacts, FunctionChange, TheoremArtifact

logger = logging.getLogger(__name__)

ANALYSIS_FAILED = "analysis failed"


@dataclass
class FunctionResult:
    """Everything produced for one changed function"""
    change: FunctionChange
    facts: ControlFlowFacts
    record: SpecificationRecord
    drift: DriftResult
    artifact: Optional[TheoremArtifact] = None
    error: Optional[str] = None

    @property
    def function_key(self) -> str:
        return self.change.function_key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function_key": self.function_key,
            "file_path": self.change.file_path,
            "function_name": self.change.function_name,
            "start_line": self.change.start_line,
            "change_type": self.change.change_type.value,
            "language": self.change.language,
            "test_files": self.change.test_files,
            "facts": self.facts.to_dict(),
            "specification": self.record.to_dict(),
            "drift": self.drift.to_dict(),
            "lean": self.artifact.render() if self.artifact else None,
            "error": self.error
        }


@dataclass
class PipelineResult:
    """Results for every function found in a diff, in diff order"""
    results: List[FunctionResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    def get(self, function_key: str) -> Optional[FunctionResult]:
        for result in self.results:
            if result.function_key == function_key:
                return result
        return None

    @property
    def drifted(self) -> List[FunctionResult]:
        return [r for r in self.results if r.drift.has_drift]

    @property
    def failed(self) -> List[FunctionResult]:
        return [r for r in self.results if r.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "functions": [r.to_dict() for r in self.results],
            "summary": {
                "total": len(self.results),
                "drifted": len(self.drifted),
                "failed": len(self.failed)
            }
        }


class SpecSyncPipeline:
    """
    Wires segmenter, extractor, synthesizer, drift detector and emitter.

    Args:
        config: Runtime settings (environment when omitted)
        sources: Supplies current file text for fact extraction
        store: Previous records for drift checks; new records are saved here
        backends: Backend chain; built from config credentials when omitted
        cache: Specification cache shared across runs
    """

    def __init__(self,
                 config: Optional[PipelineConfig] = None,
                 sources: Optional[SourceAccessor] = None,
                 store: Optional[SpecificationStore] = None,
                 backends: Optional[Sequence[SpecificationBackend]] = None,
                 cache: Optional[SpecificationCache] = None):
        self.config = config or PipelineConfig.from_env()
        self.sources = sources
        self.store = store
        self.cache = cache if cache is not None else SpecificationCache()

        if backends is None:
            backends = build_backends(self.config)

        self.segmenter = DiffSegmenter()
        self.extractor = ControlFlowExtractor()
        self.synthesizer = SpecificationSynthesizer(
            backends=backends,
            cache=self.cache,
            timeout=self.config.backend_timeout
        )
        self.detector = DriftDetector(
            threshold=self.config.drift_threshold,
            reason_weight=self.config.drift_reason_weight
        )
        self.emitter = TheoremSkeletonEmitter()

    def segment(self, diff: str, changed_files: Iterable[ChangedFileLike]) -> List[FunctionChange]:
        return self.segmenter.parse_diff(diff, changed_files)

    def _read_source(self, change: FunctionChange, head: Optional[str], base: Optional[str],
                     sources: Optional[SourceAccessor]) -> str:
        sources = sources or self.sources
        if sources is None:
            return ""
        revision = base if change.change_type == ChangeType.REMOVED and base else head
        return sources.read_file(change.file_path, revision) or ""

    async def process_function(self, change: FunctionChange,
                               head: Optional[str] = None,
                               base: Optional[str] = None,
                               sources: Optional[SourceAccessor] = None) -> FunctionResult:
        """
        Run every stage for one function.

        Failures are isolated: any exception other than cancellation is
        logged and turned into a degraded result for this function only.
        """
        try:
            return await self._process(change, head, base, sources)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Analysis failed for %s", change.function_key)
            return self._degraded_result(change, f"{type(e).__name__}: {e}")

    async def _process(self, change: FunctionChange, head: Optional[str],
                       base: Optional[str], sources: Optional[SourceAccessor]) -> FunctionResult:
        source = self._read_source(change, head, base, sources)
        accessor = sources or self.sources
        if accessor is not None:
            change.test_files = accessor.find_test_files(change.file_path)
        facts = self.extractor.extract(change, source)

        previous = self.store.get(change.function_key) if self.store is not None else None
        drift = self.detector.detect(change.function_key, facts, previous, change)

        record = await self.synthesizer.synthesize(change, facts)
        if self.store is not None:
            if record.degraded and previous is not None and not previous.degraded:
                logger.info("Keeping stored record for %s over a degraded one", change.function_key)
            else:
                self.store.put(record)

        artifact = self.emitter.emit_for_facts(record, change.function_name, facts)
        return FunctionResult(change=change, facts=facts, record=record, drift=drift, artifact=artifact)

    def _degraded_result(self, change: FunctionChange, error: str) -> FunctionResult:
        facts = ControlFlowFacts.degraded_facts()
        record = deterministic_specification(change.function_key, facts, change.line_count)
        drift = DriftResult(function_key=change.function_key, has_drift=False, reasons=[ANALYSIS_FAILED])

        artifact = None
        try:
            artifact = self.emitter.emit_for_facts(record, change.function_name, facts)
        except Exception:
            logger.exception("Could not emit fallback artifact for %s", change.function_key)

        return FunctionResult(change=change, facts=facts, record=record, drift=drift,
                              artifact=artifact, error=error)

    async def process_diff(self, diff: str, changed_files: Iterable[ChangedFileLike],
                           head: Optional[str] = None,
                           base: Optional[str] = None,
                           sources: Optional[SourceAccessor] = None) -> PipelineResult:
        """
        Analyze every changed function in a diff.

        Args:
            diff: Unified diff text
            changed_files: Changed-file descriptors (paths, dicts or ChangedFile)
            head: Revision to read current sources from (working tree when None)
            base: Revision to read removed functions from
            sources: Source accessor for this call only (defaults to the pipeline's)

        Returns:
            PipelineResult in diff order
        """
        changes = self.segment(diff, changed_files)
        logger.info("Found %d changed functions", len(changes))
        if not changes:
            return PipelineResult()

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def bounded(change: FunctionChange) -> FunctionResult:
            async with semaphore:
                return await self.process_function(change, head, base, sources)

        results = await asyncio.gather(*(bounded(c) for c in changes))
        return PipelineResult(results=list(results))

    async def iter_results(self, diff: str, changed_files: Iterable[ChangedFileLike],
                           head: Optional[str] = None,
                           base: Optional[str] = None,
                           sources: Optional[SourceAccessor] = None) -> AsyncIterator[FunctionResult]:
        """
        Yield per-function results as they complete.

        Closing the iterator early cancels the functions still in flight
        and waits for them to finish unwinding.
        """
        changes = self.segment(diff, changed_files)
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def bounded(change: FunctionChange) -> FunctionResult:
            async with semaphore:
                return await self.process_function(change, head, base, sources)

        tasks = [asyncio.ensure_future(bounded(c)) for c in changes]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def run(self, diff: str, changed_files: Iterable[ChangedFileLike],
            head: Optional[str] = None, base: Optional[str] = None) -> PipelineResult:
        """Synchronous entry point for scripts and the CLI"""
        return asyncio.run(self.process_diff(diff, changed_files, head, base))
