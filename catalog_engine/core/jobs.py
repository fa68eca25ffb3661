"""Resumable catalog job engine for Supplier Catalog Engine.

A job pages through a supplier catalog one bounded step at a time. Each step
fetches a single listing page for the current keyword or category, prices
every new product on it and persists the new items together with the
advanced cursor, so a crash between steps loses at most that one step.

Only one step of a given job may be in flight; the repository's version
check rejects a second writer with ``StaleJobError``. Different jobs can run
in parallel.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

import requests

from catalog_engine.api.catalog import CatalogApiError
from catalog_engine.api.ratelimit import RateLimitTimeout
from catalog_engine.db.repository import StaleJobError

from .candidates import CandidateMapper, product_identifier
from .cursors import JobParams, ScannerCursor, initial_cursor
from .models import (
    Job,
    JobItem,
    JobKind,
    JobStatus,
    RunResult,
    StepResult,
    WorkUnit,
)
from .pricing import PricingEngine, PricingRuleSource

if TYPE_CHECKING:
    from catalog_engine.db.repository import Repository

    from .config import Settings

logger = logging.getLogger(__name__)

# Upstream failures that mean "no data here", not "job failed"
TRANSIENT_ERRORS = (
    CatalogApiError,
    RateLimitTimeout,
    requests.RequestException,
    TimeoutError,
    ConnectionError,
)


class JobNotFoundError(Exception):
    """Raised when a job id does not exist."""

    pass


class CatalogSource(Protocol):
    """The catalog operations a job needs."""

    def list_page(self, unit: WorkUnit, page_number: int, page_size: int) -> list[dict[str, Any]]: ...

    def fetch_detail(self, product_id: str) -> dict[str, Any]: ...


class JobEngine:
    """Owns job lifecycle, cursor persistence and step execution."""

    def __init__(
        self,
        repo: Repository,
        catalog: CatalogSource,
        settings: Settings,
        pricing: PricingEngine | None = None,
        rules: PricingRuleSource | None = None,
    ) -> None:
        self.repo = repo
        self.catalog = catalog
        self.settings = settings
        self.pricing = pricing or PricingEngine(settings)
        self.rules = rules if rules is not None else repo
        self.mapper = CandidateMapper(settings, self.pricing)

    # ==================== Lifecycle ====================

    def create_job(self, kind: JobKind, params: JobParams | dict[str, Any] | None = None) -> Job:
        """Create a pending job with a fresh cursor."""
        if params is None:
            params = JobParams(
                page_size=self.settings.jobs.page_size,
                max_pages_per_unit=self.settings.jobs.max_pages_per_unit,
            )
        elif isinstance(params, dict):
            raw = {k: v for k, v in params.items() if k != "cursor"}
            raw.setdefault("page_size", self.settings.jobs.page_size)
            raw.setdefault("max_pages_per_unit", self.settings.jobs.max_pages_per_unit)
            params = JobParams.model_validate(raw)

        job = Job(
            kind=kind,
            status=JobStatus.PENDING,
            params=params.model_copy(update={"cursor": initial_cursor(kind.value)}),
        )
        self.repo.create_job(job)
        logger.info(
            f"Created {kind.value} job {job.id} with {len(job.units)} unit(s), "
            f"page size {job.params.page_size}, max {job.params.max_pages_per_unit} page(s) per unit"
        )
        return job

    def get_job(self, job_id: int) -> Job:
        job = self.repo.load_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def cancel_job(self, job_id: int) -> bool:
        """Request cancellation. Takes effect before the next step starts.

        Returns False if the job had already finished.
        """
        if self.repo.get_status(job_id) is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        canceled = self.repo.set_status(job_id, JobStatus.CANCELED)
        if canceled:
            logger.info(f"Job {job_id} canceled")
        else:
            logger.info(f"Job {job_id} already finished, cancel ignored")
        return canceled

    # ==================== Steps ====================

    def run_one_step(self, job_id: int) -> StepResult:
        """Execute one bounded unit of work.

        A job-fatal error moves the job to ``error`` and is re-raised; items
        persisted by earlier steps are kept.
        """
        try:
            return self._step(job_id)
        except (JobNotFoundError, StaleJobError):
            raise
        except Exception as e:
            self._fail(job_id, e)
            raise

    def _step(self, job_id: int) -> StepResult:
        job = self.get_job(job_id)
        if job.is_terminal:
            logger.debug(f"Job {job_id} is {job.status.value}, nothing to do")
            return StepResult()

        now = datetime.now()
        if job.status == JobStatus.PENDING:
            job.status = JobStatus.RUNNING
            job.started_at = now
            logger.info(f"Job {job_id} started")

        params = job.params
        cursor = params.cursor or initial_cursor(job.kind.value)
        units = job.units
        job.totals.steps += 1

        if self._target_reached(job) or cursor.unit_index >= len(units):
            return self._save(job, cursor, [], done=True, advanced=False)

        if cursor.page_number > params.max_pages_per_unit:
            logger.info(f"Job {job_id}: page limit reached for unit {cursor.unit_index}, advancing")
            return self._save(job, cursor.next_unit(), [], advanced=True)

        unit = units[cursor.unit_index]
        page = self._fetch_page(job, unit, cursor.page_number)

        new_items, processed_ids, filtered_ids = self._process_page(job, cursor, page)
        added = len(new_items)

        full_page = len(page) >= params.page_size
        if full_page and cursor.page_number < params.max_pages_per_unit:
            next_cursor = cursor.next_page(added)
            advanced = False
        else:
            next_cursor = cursor.next_unit(added)
            advanced = True

        # Scanners cache everything processed; finders only what the cost filter dropped
        remembered = processed_ids if isinstance(next_cursor, ScannerCursor) else filtered_ids
        if remembered:
            next_cursor = next_cursor.remember(remembered, self.settings.jobs.seen_cache_size)

        job.totals.candidates += added
        result = self._save(job, next_cursor, new_items, advanced=advanced)
        logger.info(
            f"Job {job_id}: {unit.kind.value} {unit.value!r} page {cursor.page_number} -> "
            f"{len(page)} listed, {added} added, done={result.done}"
        )
        return result

    def _fetch_page(self, job: Job, unit: WorkUnit, page_number: int) -> list[dict[str, Any]]:
        """One listing page; upstream failure counts as an empty page."""
        try:
            page = self.catalog.list_page(unit, page_number, job.params.page_size)
        except TRANSIENT_ERRORS as e:
            job.totals.pages_failed += 1
            logger.warning(
                f"Job {job.id}: page {page_number} of {unit.value!r} failed, treating as empty: {e}"
            )
            return []
        job.totals.pages_fetched += 1
        return page or []

    def _process_page(
        self,
        job: Job,
        cursor: Any,
        page: list[dict[str, Any]],
    ) -> tuple[list[JobItem], list[str], list[str]]:
        """Fetch, map and price the page's unseen products.

        Returns (new items, ids processed this step, ids the cost filter dropped).
        """
        listed: list[str] = []
        for raw in page:
            pid = product_identifier(raw)
            if pid and pid not in listed:
                listed.append(pid)
        if not listed:
            return [], [], []

        seen = set(cursor.skip_identifiers)
        seen |= self.repo.existing_item_ids(job.id, listed)
        fresh = [pid for pid in listed if pid not in seen]
        if not fresh:
            return [], [], []

        details = self._fetch_details(job, fresh)

        new_items: list[JobItem] = []
        processed: list[str] = []
        filtered: list[str] = []
        for pid, detail in zip(fresh, details):
            if detail is None:
                continue
            # Mapping errors are job-fatal and propagate
            item = self.mapper.map_item(detail, self.rules, fallback_id=pid)
            item.supplier_product_id = pid
            processed.append(pid)

            if not self._passes_filters(job.params, item):
                job.totals.filtered += 1
                filtered.append(pid)
                continue
            new_items.append(item)
            if self._target_reached(job, pending=len(new_items)):
                break
        return new_items, processed, filtered

    def _fetch_details(self, job: Job, product_ids: list[str]) -> list[dict[str, Any] | None]:
        """Fetch details with bounded concurrency, results in input order."""

        def fetch(pid: str) -> dict[str, Any] | None:
            try:
                return self.catalog.fetch_detail(pid)
            except TRANSIENT_ERRORS as e:
                logger.warning(f"Job {job.id}: detail for {pid} failed, skipping: {e}")
                return None

        workers = max(1, min(self.settings.jobs.detail_concurrency, len(product_ids)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            details = list(executor.map(fetch, product_ids))

        job.totals.details_failed += sum(1 for d in details if d is None)
        return details

    @staticmethod
    def _passes_filters(params: JobParams, item: JobItem) -> bool:
        cost = item.metrics.min_cost_foreign
        if params.min_cost is None and params.max_cost is None:
            return True
        if cost is None:
            return False
        if params.min_cost is not None and cost < params.min_cost:
            return False
        if params.max_cost is not None and cost > params.max_cost:
            return False
        return True

    @staticmethod
    def _target_reached(job: Job, pending: int = 0) -> bool:
        target = job.params.target_count
        return target is not None and job.totals.candidates + pending >= target

    def _save(
        self,
        job: Job,
        next_cursor: Any,
        new_items: list[JobItem],
        done: bool | None = None,
        advanced: bool = False,
    ) -> StepResult:
        """Persist the step atomically and report progress."""
        job.params = job.params.model_copy(update={"cursor": next_cursor})
        if done is None:
            done = next_cursor.unit_index >= len(job.units) or self._target_reached(job)
        if done:
            job.status = JobStatus.SUCCESS
            job.finished_at = datetime.now()

        self.repo.save_step(job, new_items)
        if done:
            logger.info(f"Job {job.id} finished with {job.totals.candidates} candidate(s)")
        return StepResult(added_count=len(new_items), done=done, advanced=advanced)

    def _fail(self, job_id: int, error: Exception) -> None:
        message = str(error) or type(error).__name__
        logger.exception(f"Job {job_id} failed: {message}")
        self.repo.set_status(job_id, JobStatus.ERROR, error_text=message)

    # ==================== Run to completion ====================

    def run_to_completion(self, job_id: int, max_steps: int | None = None) -> RunResult:
        """Step until done, canceled, failed or out of steps.

        Never raises for job failures; the outcome is in the result and on the
        job row.
        """
        limit = max_steps or self.settings.jobs.max_steps
        steps = 0
        added = 0

        job = self.get_job(job_id)
        if job.is_terminal:
            return RunResult(
                ok=job.status == JobStatus.SUCCESS,
                status=job.status,
                error=job.error_text,
            )

        try:
            while steps < limit:
                result = self.run_one_step(job_id)
                steps += 1
                added += result.added_count
                if result.done:
                    break
                status = self.repo.get_status(job_id)
                if status is not None and status.is_terminal:
                    logger.info(f"Job {job_id} is {status.value}, stopping")
                    break
            else:
                logger.warning(f"Job {job_id} hit the {limit} step limit, finalizing")

            self._finalize(job_id)
        except StaleJobError as e:
            logger.warning(f"Job {job_id}: {e}")
            return RunResult(
                ok=False,
                steps_run=steps,
                added_count=added,
                status=self.repo.get_status(job_id) or JobStatus.RUNNING,
                error=str(e),
            )
        except Exception as e:
            # run_one_step has already recorded step failures
            self.repo.set_status(job_id, JobStatus.ERROR, error_text=str(e) or type(e).__name__)
            return RunResult(
                ok=False,
                steps_run=steps,
                added_count=added,
                status=JobStatus.ERROR,
                error=str(e) or type(e).__name__,
            )

        final = self.get_job(job_id)
        return RunResult(
            ok=final.status == JobStatus.SUCCESS,
            steps_run=steps,
            added_count=added,
            status=final.status,
            error=final.error_text,
        )

    def _finalize(self, job_id: int) -> None:
        """Reconcile totals with stored items and mark a still-running job successful."""
        job = self.get_job(job_id)
        if job.is_terminal:
            return
        job.totals.candidates = self.repo.count_job_items(job_id)
        job.status = JobStatus.SUCCESS
        job.finished_at = datetime.now()
        self.repo.save_step(job, [])
        logger.info(f"Job {job_id} finalized with {job.totals.candidates} candidate(s)")
