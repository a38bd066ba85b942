"""
Cleanup pass over stored articles.

Re-evaluates newsletter-sourced articles against the AI/legal relevance
filter and removes the ones that no longer qualify from the sorted set and
both seen-sets. Records from other origins are left alone, as are records
that cannot be deserialized.

A pass is single-shot and keeps no state of its own; re-running it after a
partial failure is safe because removals of absent members are no-ops.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..logging import PerformanceLogger, get_logger, log_processing_stage
from ..storage.articles import ArticleStore, RemovalReport, StoredArticle
from .relevance import RelevanceFilter, requires_relevance_check

logger = get_logger(__name__)


class CleanupScope(Enum):
    """Which records a pass considers."""
    ALL = "all"
    RETENTION_WINDOW = "window"

    @classmethod
    def parse(cls, value: str | None) -> "CleanupScope":
        """Parse a scope name; empty means ALL."""
        if not value:
            return cls.ALL
        value = value.strip().lower()
        for scope in cls:
            if value in (scope.value, scope.name.lower()):
                return scope
        raise ValueError(f"Unknown cleanup scope: {value!r}")


@dataclass
class CleanupResult:
    """Counts reported by a cleanup pass."""
    scanned: int = 0
    removed: int = 0
    failed_indexes: list[str] = field(default_factory=list)

    @property
    def kept(self) -> int:
        return self.scanned - self.removed

    def to_dict(self) -> dict[str, Any]:
        return {"scanned": self.scanned, "removed": self.removed, "kept": self.kept}


class CleanupError(Exception):
    """One or more index removals failed; completed batches stay applied."""

    def __init__(self, result: CleanupResult, report: RemovalReport):
        self.result = result
        self.report = report
        message = "Cleanup removal failed for " + ", ".join(
            f"{name}: {error}" for name, error in report.failures.items()
        )
        if report.deferred:
            message += f" (deferred: {', '.join(report.deferred)})"
        super().__init__(message)


@dataclass
class RemovalPlan:
    """Records marked for removal, split per index."""
    members: list[Any] = field(default_factory=list)
    canons: list[str] = field(default_factory=list)
    ids: list[str] = field(default_factory=list)

    def add(self, article: StoredArticle) -> None:
        self.members.append(article.raw)
        if article.record.canon:
            self.canons.append(article.record.canon)
        if article.record.id:
            self.ids.append(article.record.id)

    def __len__(self) -> int:
        return len(self.members)


class CleanupPipeline:
    """Partition stored articles into keep/remove and apply the removals."""

    def __init__(
        self,
        articles: ArticleStore,
        relevance: RelevanceFilter,
        filterable_origins: Iterable[str],
        batch_size: int = 100,
        retention_days: int = 14,
    ):
        self.articles = articles
        self.relevance = relevance
        self.filterable_origins = tuple(filterable_origins)
        self.batch_size = batch_size
        self.retention_days = retention_days

    async def load(self, scope: CleanupScope, now_ms: float | None = None) -> list[StoredArticle]:
        if scope is CleanupScope.RETENTION_WINDOW:
            return await self.articles.load_window(self.retention_days, now_ms)
        return await self.articles.load_all()

    def should_remove(self, article: StoredArticle) -> bool:
        """Decide one record; undecodable and non-newsletter records are kept."""
        record = article.record
        if record is None:
            return False
        if not requires_relevance_check(record.origin, self.filterable_origins):
            return False
        return not self.relevance.is_relevant_article(record.title, record.summary)

    def partition(self, candidates: list[StoredArticle]) -> tuple[CleanupResult, RemovalPlan]:
        result = CleanupResult()
        plan = RemovalPlan()
        for article in candidates:
            result.scanned += 1
            if self.should_remove(article):
                plan.add(article)
                result.removed += 1
        return result, plan

    async def run(self, scope: CleanupScope = CleanupScope.ALL, now_ms: float | None = None) -> CleanupResult:
        """Run one pass.

        Raises:
            StoreError: If loading the candidates fails
            CleanupError: If any index removal failed; a re-run finishes the job
        """
        with PerformanceLogger("cleanup_non_ai", logger):
            started = time.perf_counter()
            candidates = await self.load(scope, now_ms)
            result, plan = self.partition(candidates)

            if plan:
                report = await self.articles.remove(
                    plan.members, plan.canons, plan.ids, batch_size=self.batch_size
                )
                if not report.ok:
                    result.failed_indexes = report.failed_indexes
                    logger.error(
                        "Cleanup finished with failed removals",
                        scope=scope.value,
                        failed_indexes=result.failed_indexes,
                        **result.to_dict(),
                    )
                    raise CleanupError(result, report)

            logger.info(
                "Cleanup finished",
                **log_processing_stage(
                    "cleanup",
                    input_count=result.scanned,
                    output_count=result.kept,
                    duration=time.perf_counter() - started,
                    scope=scope.value,
                    removed=result.removed,
                ),
            )
            return result


async def run_cleanup(
    articles: ArticleStore,
    relevance: RelevanceFilter,
    filterable_origins: Iterable[str],
    scope: CleanupScope = CleanupScope.ALL,
    batch_size: int = 100,
    retention_days: int = 14,
    now_ms: float | None = None,
) -> CleanupResult:
    """Convenience function for a single cleanup pass."""
    pipeline = CleanupPipeline(
        articles,
        relevance,
        filterable_origins,
        batch_size=batch_size,
        retention_days=retention_days,
    )
    return await pipeline.run(scope, now_ms)
