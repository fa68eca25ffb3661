"""Flask JSON API for job status and pricing quotes."""

from __future__ import annotations

import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import Flask, jsonify, request

from catalog_engine.api.catalog import CatalogClient
from catalog_engine.core.config import Settings, get_settings
from catalog_engine.core.jobs import JobEngine, JobNotFoundError
from catalog_engine.core.models import Job, JobItem, JobStatus, PricingRule
from catalog_engine.db.repository import Repository

logger = logging.getLogger(__name__)


def job_to_dict(job: Job) -> dict[str, Any]:
    """JSON view of a job."""
    return {
        "id": job.id,
        "kind": job.kind.value,
        "status": job.status.value,
        "params": job.params.to_json_dict(),
        "totals": job.totals.to_dict(),
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "finished_at": job.finished_at.isoformat() if job.finished_at else None,
        "error_text": job.error_text,
    }


def item_to_dict(item: JobItem) -> dict[str, Any]:
    """JSON view of a job item."""
    m = item.metrics
    return {
        "id": item.id,
        "supplier_product_id": item.supplier_product_id,
        "name": item.name,
        "category": item.category,
        "metrics": {
            "stock_sum": m.stock_sum,
            "min_retail_local": float(m.min_retail_local) if m.min_retail_local is not None else None,
            "min_cost_foreign": float(m.min_cost_foreign) if m.min_cost_foreign is not None else None,
            "variant_count": m.variant_count,
        },
        "variants": [
            {
                "variant_id": v.variant_id,
                "sku": v.sku,
                "variant_key": v.variant_key,
                "size": v.size,
                "color": v.color,
                "cost_foreign": float(v.cost_foreign) if v.cost_foreign is not None else None,
                "retail_local": float(v.retail_local) if v.retail_local is not None else None,
                "stock": v.stock,
                "anomalies": v.anomalies,
            }
            for v in item.variants
        ],
    }


def rule_to_dict(rule: PricingRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "scope": rule.scope.value,
        "category": rule.category,
        "margin_percent": float(rule.margin_percent),
        "min_profit": float(rule.min_profit),
        "vat_percent": float(rule.vat_percent),
        "payment_fee_percent": float(rule.payment_fee_percent),
        "smart_rounding_enabled": rule.smart_rounding_enabled,
        "rounding_targets": [float(t) for t in rule.rounding_targets],
    }


def create_app(
    settings: Settings | None = None,
    engine: JobEngine | None = None,
    repo: Repository | None = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.json.sort_keys = False

    settings = settings or get_settings()
    repo = repo or Repository()
    engine = engine or JobEngine(repo, CatalogClient(settings, api_log=repo), settings)

    @app.errorhandler(JobNotFoundError)
    def job_not_found(error: JobNotFoundError):
        return jsonify({"error": str(error)}), 404

    @app.route("/api/jobs")
    def api_jobs():
        """List recent jobs."""
        status_arg = request.args.get("status")
        try:
            status = JobStatus(status_arg) if status_arg else None
        except ValueError:
            return jsonify({"error": f"Unknown status: {status_arg}"}), 400
        limit = request.args.get("limit", default=50, type=int)
        jobs = repo.list_jobs(status=status, limit=limit)
        return jsonify({"count": len(jobs), "jobs": [job_to_dict(j) for j in jobs]})

    @app.route("/api/jobs/<int:job_id>")
    def api_job(job_id: int):
        """Job status, totals and error text."""
        job = engine.get_job(job_id)
        data = job_to_dict(job)
        data["item_count"] = repo.count_job_items(job_id)
        return jsonify(data)

    @app.route("/api/jobs/<int:job_id>/items")
    def api_job_items(job_id: int):
        engine.get_job(job_id)
        limit = request.args.get("limit", default=100, type=int)
        offset = request.args.get("offset", default=0, type=int)
        items = repo.get_job_items(job_id, limit=limit, offset=offset)
        return jsonify({"count": len(items), "items": [item_to_dict(i) for i in items]})

    @app.route("/api/jobs/<int:job_id>/run", methods=["POST"])
    def api_run_job(job_id: int):
        """Run one step (default) or the whole job."""
        body = request.get_json(silent=True) or {}
        mode = body.get("mode", "step")
        if mode == "all":
            result = engine.run_to_completion(job_id, max_steps=body.get("max_steps"))
            return jsonify({
                "ok": result.ok,
                "steps_run": result.steps_run,
                "added": result.added_count,
                "status": result.status.value,
                "error": result.error,
            })
        if mode != "step":
            return jsonify({"error": f"Unknown mode: {mode}"}), 400

        try:
            step = engine.run_one_step(job_id)
        except JobNotFoundError:
            raise
        except Exception as e:
            job = engine.get_job(job_id)
            return jsonify({"ok": False, "status": job.status.value, "error": str(e)}), 500
        job = engine.get_job(job_id)
        return jsonify({
            "ok": True,
            "added": step.added_count,
            "done": step.done,
            "advanced": step.advanced,
            "status": job.status.value,
        })

    @app.route("/api/jobs/<int:job_id>/cancel", methods=["POST"])
    def api_cancel_job(job_id: int):
        canceled = engine.cancel_job(job_id)
        job = engine.get_job(job_id)
        return jsonify({"canceled": canceled, "status": job.status.value})

    @app.route("/api/pricing/quote", methods=["POST"])
    def api_quote():
        """Price one supplier cost."""
        body = request.get_json(silent=True) or {}
        try:
            cost = Decimal(str(body["cost"]))
            shipping = Decimal(str(body["shipping"])) if body.get("shipping") is not None else None
        except KeyError:
            return jsonify({"error": "cost is required"}), 400
        except InvalidOperation:
            return jsonify({"error": "cost and shipping must be numbers"}), 400

        quote = engine.pricing.compute_retail(cost, shipping, body.get("category"), repo)
        return jsonify(quote.to_dict())

    @app.route("/api/pricing/rules")
    def api_rules():
        rules = repo.list_pricing_rules()
        return jsonify({
            "builtin": rule_to_dict(engine.pricing.builtin_rule()),
            "rules": [rule_to_dict(r) for r in rules],
        })

    return app


class WebServer:
    """Runs the Flask app in a background thread."""

    def __init__(self, host: str = "127.0.0.1", port: int = 5050) -> None:
        self.host = host
        self.port = port
        self._thread: threading.Thread | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self, app: Flask | None = None) -> str:
        """Start serving. Returns the URL."""
        if self._running:
            return self.url

        app = app or create_app()
        self._running = True

        def run_server():
            logging.getLogger("werkzeug").setLevel(logging.ERROR)
            try:
                app.run(host=self.host, port=self.port, debug=False, use_reloader=False, threaded=True)
            except Exception as e:
                logger.error(f"Web server error: {e}")
            finally:
                self._running = False

        self._thread = threading.Thread(target=run_server, daemon=True)
        self._thread.start()
        logger.info(f"API server started at {self.url}")
        return self.url
