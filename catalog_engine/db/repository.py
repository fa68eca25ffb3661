"""Repository pattern for database operations."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import case, delete, desc, func, select, update

from catalog_engine.core.cursors import parse_job_params
from catalog_engine.core.models import (
    CandidateMetrics,
    Job,
    JobItem,
    JobKind,
    JobStatus,
    JobTotals,
    PricingRule,
    RuleScope,
    VariantCandidate,
)

from .models import ApiLogDB, JobDB, JobItemDB, PricingRuleDB
from .session import session_scope

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = [s.value for s in JobStatus if s.is_terminal]


class StaleJobError(Exception):
    """Raised when a job row changed under a writer holding an older version."""

    def __init__(self, job_id: int, expected_version: int) -> None:
        super().__init__(
            f"Job {job_id} was modified concurrently (expected version {expected_version})"
        )
        self.job_id = job_id
        self.expected_version = expected_version


def _decimal_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _decimal_or_none(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def variant_to_dict(v: VariantCandidate) -> dict[str, Any]:
    """Serialize a variant candidate for storage."""
    return {
        "variant_id": v.variant_id,
        "sku": v.sku,
        "variant_key": v.variant_key,
        "size": v.size,
        "color": v.color,
        "cost_foreign": _decimal_str(v.cost_foreign),
        "shipping_foreign": _decimal_str(v.shipping_foreign),
        "retail_local": _decimal_str(v.retail_local),
        "landed_local": _decimal_str(v.landed_local),
        "billed_weight_kg": _decimal_str(v.billed_weight_kg),
        "stock": v.stock,
        "weight_grams": v.weight_grams,
        "length_cm": _decimal_str(v.length_cm),
        "width_cm": _decimal_str(v.width_cm),
        "height_cm": _decimal_str(v.height_cm),
        "anomalies": list(v.anomalies),
    }


def variant_from_dict(d: dict[str, Any]) -> VariantCandidate:
    """Rebuild a variant candidate from storage."""
    return VariantCandidate(
        variant_id=d.get("variant_id", ""),
        sku=d.get("sku", ""),
        variant_key=d.get("variant_key", ""),
        size=d.get("size"),
        color=d.get("color"),
        cost_foreign=_decimal_or_none(d.get("cost_foreign")),
        shipping_foreign=_decimal_or_none(d.get("shipping_foreign")),
        retail_local=_decimal_or_none(d.get("retail_local")),
        landed_local=_decimal_or_none(d.get("landed_local")),
        billed_weight_kg=_decimal_or_none(d.get("billed_weight_kg")),
        stock=int(d.get("stock") or 0),
        weight_grams=d.get("weight_grams"),
        length_cm=_decimal_or_none(d.get("length_cm")),
        width_cm=_decimal_or_none(d.get("width_cm")),
        height_cm=_decimal_or_none(d.get("height_cm")),
        anomalies=list(d.get("anomalies") or []),
    )


class Repository:
    """Data access repository for all database operations."""

    # ==================== Jobs ====================

    def create_job(self, job: Job) -> Job:
        """Insert a new job."""
        with session_scope() as session:
            db_job = JobDB(
                kind=job.kind.value,
                status=job.status.value,
                params_json=json.dumps(job.params.to_json_dict()),
                totals_json=json.dumps(job.totals.to_dict()),
                error_text=job.error_text,
                version=0,
                created_at=job.created_at,
            )
            session.add(db_job)
            session.flush()
            job.id = db_job.id
            job.version = 0
            return job

    def load_job(self, job_id: int) -> Job | None:
        """Load a job, validating its params and cursor."""
        with session_scope() as session:
            db_job = session.get(JobDB, job_id)
            if db_job is None:
                return None
            return self._db_to_job(db_job)

    def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[Job]:
        """Most recent jobs first."""
        with session_scope() as session:
            query = select(JobDB)
            if status is not None:
                query = query.where(JobDB.status == status.value)
            query = query.order_by(desc(JobDB.created_at), desc(JobDB.id)).limit(limit)
            return [self._db_to_job(db) for db in session.execute(query).scalars().all()]

    def save_step(self, job: Job, new_items: list[JobItem]) -> Job:
        """Persist cursor, totals, status and new items in one transaction.

        The write only succeeds if the row still carries ``job.version``; a
        cancellation that landed meanwhile is kept.
        """
        if job.id is None:
            raise ValueError("Cannot save a step for an unsaved job")

        with session_scope() as session:
            values: dict[str, Any] = {
                "params_json": json.dumps(job.params.to_json_dict()),
                "totals_json": json.dumps(job.totals.to_dict()),
                "version": JobDB.version + 1,
                "updated_at": datetime.now(),
                "status": case(
                    (JobDB.status == JobStatus.CANCELED.value, JobDB.status),
                    else_=job.status.value,
                ),
            }
            if job.started_at is not None:
                values["started_at"] = func.coalesce(JobDB.started_at, job.started_at)
            if job.finished_at is not None:
                values["finished_at"] = func.coalesce(JobDB.finished_at, job.finished_at)

            result = session.execute(
                update(JobDB)
                .where(JobDB.id == job.id, JobDB.version == job.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StaleJobError(job.id, job.version)

            for item in new_items:
                session.add(self._job_item_to_db(job.id, item))
            session.flush()

        job.version += 1
        return job

    def set_status(self, job_id: int, status: JobStatus, error_text: str | None = None) -> bool:
        """Move a non-terminal job to ``status``. Returns False if it was already terminal."""
        values: dict[str, Any] = {"status": status.value, "updated_at": datetime.now()}
        if error_text is not None:
            values["error_text"] = error_text
        if status == JobStatus.RUNNING:
            values["started_at"] = func.coalesce(JobDB.started_at, datetime.now())
        if status.is_terminal:
            values["finished_at"] = datetime.now()

        with session_scope() as session:
            result = session.execute(
                update(JobDB)
                .where(JobDB.id == job_id, JobDB.status.not_in(TERMINAL_STATUSES))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def get_status(self, job_id: int) -> JobStatus | None:
        """Cheap status lookup without parsing params."""
        with session_scope() as session:
            value = session.execute(select(JobDB.status).where(JobDB.id == job_id)).scalar()
            return JobStatus(value) if value else None

    def _db_to_job(self, db: JobDB) -> Job:
        kind = JobKind(db.kind)
        return Job(
            id=db.id,
            kind=kind,
            status=JobStatus(db.status),
            params=parse_job_params(kind.value, json.loads(db.params_json or "{}")),
            totals=JobTotals.from_dict(json.loads(db.totals_json or "{}")),
            created_at=db.created_at,
            started_at=db.started_at,
            finished_at=db.finished_at,
            error_text=db.error_text or "",
            version=db.version,
        )

    # ==================== Job Items ====================

    def existing_item_ids(self, job_id: int, product_ids: list[str]) -> set[str]:
        """Which of ``product_ids`` are already stored for the job."""
        if not product_ids:
            return set()
        with session_scope() as session:
            query = select(JobItemDB.supplier_product_id).where(
                JobItemDB.job_id == job_id,
                JobItemDB.supplier_product_id.in_(product_ids),
            )
            return set(session.execute(query).scalars().all())

    def get_job_items(self, job_id: int, limit: int | None = None, offset: int = 0) -> list[JobItem]:
        """Items of a job in insertion order."""
        with session_scope() as session:
            query = (
                select(JobItemDB)
                .where(JobItemDB.job_id == job_id)
                .order_by(JobItemDB.id)
                .offset(offset)
            )
            if limit is not None:
                query = query.limit(limit)
            return [self._db_to_job_item(db) for db in session.execute(query).scalars().all()]

    def count_job_items(self, job_id: int) -> int:
        with session_scope() as session:
            return session.execute(
                select(func.count(JobItemDB.id)).where(JobItemDB.job_id == job_id)
            ).scalar_one()

    def _job_item_to_db(self, job_id: int, item: JobItem) -> JobItemDB:
        return JobItemDB(
            job_id=job_id,
            supplier_product_id=item.supplier_product_id,
            name=item.name,
            category=item.category,
            stock_sum=item.metrics.stock_sum,
            min_retail_local=item.metrics.min_retail_local,
            min_cost_foreign=item.metrics.min_cost_foreign,
            variant_count=item.metrics.variant_count,
            priced_variant_count=item.metrics.priced_variant_count,
            variants_json=json.dumps([variant_to_dict(v) for v in item.variants]),
            raw_json=json.dumps(item.raw, default=_json_default),
            created_at=item.created_at,
        )

    def _db_to_job_item(self, db: JobItemDB) -> JobItem:
        return JobItem(
            id=db.id,
            job_id=db.job_id,
            supplier_product_id=db.supplier_product_id,
            name=db.name or "",
            category=db.category or "",
            metrics=CandidateMetrics(
                stock_sum=db.stock_sum or 0,
                min_retail_local=_decimal_or_none(db.min_retail_local),
                min_cost_foreign=_decimal_or_none(db.min_cost_foreign),
                variant_count=db.variant_count or 0,
                priced_variant_count=db.priced_variant_count or 0,
            ),
            variants=[variant_from_dict(d) for d in json.loads(db.variants_json or "[]")],
            raw=json.loads(db.raw_json) if db.raw_json else {},
            created_at=db.created_at,
        )

    # ==================== Pricing Rules ====================

    def get_rule(self, category: str) -> PricingRule | None:
        """Category rule lookup (case-insensitive)."""
        key = category.strip().lower()
        if not key:
            return None
        with session_scope() as session:
            db_rule = session.execute(
                select(PricingRuleDB).where(
                    PricingRuleDB.scope == RuleScope.CATEGORY.value,
                    PricingRuleDB.category == key,
                )
            ).scalar_one_or_none()
            return self._db_to_rule(db_rule) if db_rule else None

    def get_default_rule(self) -> PricingRule | None:
        with session_scope() as session:
            db_rule = session.execute(
                select(PricingRuleDB)
                .where(PricingRuleDB.scope == RuleScope.DEFAULT.value)
                .order_by(desc(PricingRuleDB.id))
                .limit(1)
            ).scalar_one_or_none()
            return self._db_to_rule(db_rule) if db_rule else None

    def save_pricing_rule(self, rule: PricingRule) -> PricingRule:
        """Insert or replace a rule. Rounding targets are stored sorted."""
        if rule.scope == RuleScope.BUILTIN:
            raise ValueError("Built-in rules are configuration, not stored rules")
        category = rule.category.strip().lower() if rule.category else None
        if rule.scope == RuleScope.CATEGORY and not category:
            raise ValueError("A category rule needs a category")
        if rule.scope == RuleScope.DEFAULT:
            category = None
        targets = sorted(rule.rounding_targets)

        with session_scope() as session:
            if rule.scope == RuleScope.DEFAULT:
                db_rule = session.execute(
                    select(PricingRuleDB).where(PricingRuleDB.scope == RuleScope.DEFAULT.value)
                ).scalars().first()
            else:
                db_rule = session.execute(
                    select(PricingRuleDB).where(PricingRuleDB.category == category)
                ).scalar_one_or_none()
            if db_rule is None:
                db_rule = PricingRuleDB()
                session.add(db_rule)

            db_rule.scope = rule.scope.value
            db_rule.category = category
            db_rule.margin_percent = rule.margin_percent
            db_rule.min_profit = rule.min_profit
            db_rule.vat_percent = rule.vat_percent
            db_rule.payment_fee_percent = rule.payment_fee_percent
            db_rule.smart_rounding_enabled = rule.smart_rounding_enabled
            db_rule.rounding_targets_json = json.dumps([str(t) for t in targets])
            session.flush()

            rule.id = db_rule.id
            rule.category = category
            rule.rounding_targets = targets
            return rule

    def list_pricing_rules(self) -> list[PricingRule]:
        with session_scope() as session:
            rows = session.execute(
                select(PricingRuleDB).order_by(PricingRuleDB.scope, PricingRuleDB.category)
            ).scalars().all()
            return [self._db_to_rule(db) for db in rows]

    def delete_pricing_rule(self, rule_id: int) -> bool:
        with session_scope() as session:
            result = session.execute(delete(PricingRuleDB).where(PricingRuleDB.id == rule_id))
            return result.rowcount == 1

    def _db_to_rule(self, db: PricingRuleDB) -> PricingRule:
        return PricingRule(
            id=db.id,
            scope=RuleScope(db.scope),
            category=db.category,
            margin_percent=Decimal(str(db.margin_percent)),
            min_profit=Decimal(str(db.min_profit)),
            vat_percent=Decimal(str(db.vat_percent)),
            payment_fee_percent=Decimal(str(db.payment_fee_percent)),
            smart_rounding_enabled=bool(db.smart_rounding_enabled),
            rounding_targets=[Decimal(t) for t in json.loads(db.rounding_targets_json or "[]")],
        )

    # ==================== API Logs ====================

    def save_api_log(
        self,
        api_name: str,
        endpoint: str,
        method: str,
        request_params: str,
        response_status: int,
        response_size: int,
        duration_ms: int,
        success: bool,
        error_message: str = "",
    ) -> None:
        """Save an API call log entry."""
        with session_scope() as session:
            session.add(
                ApiLogDB(
                    api_name=api_name,
                    endpoint=endpoint,
                    method=method,
                    request_params=request_params,
                    response_status=response_status,
                    response_size_bytes=response_size,
                    duration_ms=duration_ms,
                    success=success,
                    error_message=error_message,
                )
            )

    def get_api_logs(
        self,
        api_name: str | None = None,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get API logs with optional filtering."""
        with session_scope() as session:
            query = select(ApiLogDB)
            if api_name:
                query = query.where(ApiLogDB.api_name == api_name)
            if since:
                query = query.where(ApiLogDB.created_at >= since)
            query = query.order_by(desc(ApiLogDB.created_at), desc(ApiLogDB.id)).limit(limit)

            return [
                {
                    "id": db.id,
                    "api_name": db.api_name,
                    "endpoint": db.endpoint,
                    "method": db.method,
                    "request_params": db.request_params,
                    "response_status": db.response_status,
                    "duration_ms": db.duration_ms,
                    "success": db.success,
                    "error_message": db.error_message,
                    "created_at": db.created_at.isoformat(),
                }
                for db in session.execute(query).scalars().all()
            ]
