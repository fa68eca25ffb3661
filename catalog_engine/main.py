"""Command-line entry point for Supplier Catalog Engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from catalog_engine.core.config import Settings, get_config_dir, get_settings


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging."""
    log_dir = get_config_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / "engine.log"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalog-engine", description=__doc__)
    parser.add_argument("--mock", action="store_true", help="use the mock catalog")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create or upgrade the database")

    create = sub.add_parser("create-job", help="create a catalog job")
    create.add_argument("--kind", default="finder", help="finder or scanner")
    create.add_argument("--keyword", action="append", default=[], help="search keyword (repeatable)")
    create.add_argument("--category", action="append", default=[], help="category id (repeatable)")
    create.add_argument("--page-size", type=int)
    create.add_argument("--max-pages", type=int)
    create.add_argument("--target", type=int, help="stop after this many candidates")
    create.add_argument("--min-cost", type=_decimal_arg)
    create.add_argument("--max-cost", type=_decimal_arg)

    for name, help_text in (
        ("step", "run one step of a job"),
        ("run", "run a job to completion"),
        ("cancel", "cancel a job"),
        ("status", "show job status"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("job_id", type=int)
    sub.choices["run"].add_argument("--max-steps", type=int)

    quote = sub.add_parser("quote", help="price one supplier cost")
    quote.add_argument("--cost", type=_decimal_arg, required=True)
    quote.add_argument("--shipping", type=_decimal_arg)
    quote.add_argument("--category")

    match = sub.add_parser("match", help="resolve a variant label against live supplier variants")
    match.add_argument("--product", required=True, help="supplier product id")
    match.add_argument("--label", required=True, help="customer variant label")

    export = sub.add_parser("export", help="export job candidates")
    export.add_argument("job_id", type=int)
    export.add_argument("--format", choices=["csv", "xlsx"], default="csv")
    export.add_argument("--output", type=Path)

    serve = sub.add_parser("serve", help="serve the JSON API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5050)

    return parser


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Dispatch one parsed command."""
    from catalog_engine.api.catalog import CatalogClient
    from catalog_engine.core.jobs import JobEngine
    from catalog_engine.core.models import JobKind
    from catalog_engine.db.repository import Repository
    from catalog_engine.db.session import init_database
    from catalog_engine.web.server import job_to_dict

    init_database()
    if args.command == "init-db":
        print("Database ready")
        return 0

    repo = Repository()
    catalog = CatalogClient(settings, api_log=repo)
    engine = JobEngine(repo, catalog, settings)

    if args.command == "create-job":
        params: dict = {"keywords": args.keyword, "category_ids": args.category}
        for key, value in (
            ("page_size", args.page_size),
            ("max_pages_per_unit", args.max_pages),
            ("target_count", args.target),
            ("min_cost", args.min_cost),
            ("max_cost", args.max_cost),
        ):
            if value is not None:
                params[key] = value
        job = engine.create_job(JobKind.from_string(args.kind), params)
        _print_json(job_to_dict(job))
        return 0

    if args.command == "step":
        result = engine.run_one_step(args.job_id)
        _print_json({"added": result.added_count, "done": result.done, "advanced": result.advanced})
        return 0

    if args.command == "run":
        result = engine.run_to_completion(args.job_id, max_steps=args.max_steps)
        _print_json({
            "ok": result.ok,
            "steps_run": result.steps_run,
            "added": result.added_count,
            "status": result.status.value,
            "error": result.error,
        })
        return 0 if result.ok else 1

    if args.command == "cancel":
        canceled = engine.cancel_job(args.job_id)
        print("Canceled" if canceled else "Job already finished")
        return 0

    if args.command == "status":
        _print_json(job_to_dict(engine.get_job(args.job_id)))
        return 0

    if args.command == "quote":
        quote = engine.pricing.compute_retail(args.cost, args.shipping, args.category, repo)
        _print_json(quote.to_dict())
        return 0

    if args.command == "match":
        from catalog_engine.core.matcher import VariantMatcher, VariantMatchError

        variants = catalog.get_product_variants(args.product)
        try:
            found = VariantMatcher().require_match(args.label, variants)
        except VariantMatchError as e:
            print(f"Unresolved: {e}", file=sys.stderr)
            return 2
        _print_json({"variant_id": found.variant_id, "sku": found.sku, "strategy": found.strategy.value})
        return 0

    if args.command == "export":
        from catalog_engine.utils.export import Exporter

        engine.get_job(args.job_id)
        items = repo.get_job_items(args.job_id)
        output = args.output or Path(Exporter.generate_filename(args.job_id, args.format))
        if args.format == "xlsx":
            rows = Exporter.export_to_xlsx(items, output)
        else:
            rows = Exporter.export_to_csv(items, output)
        print(f"Exported {rows} row(s) to {output}")
        return 0

    if args.command == "serve":
        from catalog_engine.web.server import create_app

        create_app(settings, engine, repo).run(host=args.host, port=args.port)
        return 0

    return 1


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.mock:
        settings.api.mock_mode = True

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    logger.debug(f"Config dir: {get_config_dir()}, mock mode: {settings.api.mock_mode}")

    from catalog_engine.core.jobs import JobNotFoundError

    try:
        return run_command(args, settings)
    except JobNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Command failed")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
