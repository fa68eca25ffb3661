"""Typed job parameters and resume cursors.

A job's ``params`` column holds a JSON document. On load it is validated into
:class:`JobParams`, whose ``cursor`` is one of two tagged shapes:

* :class:`FinderCursor` for keyword-driven jobs
* :class:`ScannerCursor` for category-driven jobs

A cursor of the wrong shape for its job is rejected with
:class:`CursorValidationError` instead of being silently reinterpreted.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import clamp_max_pages, clamp_page_size

# Job kind value -> cursor tag
CURSOR_KIND_BY_JOB = {
    "catalog-finder": "finder",
    "catalog-scanner": "scanner",
}


class CursorValidationError(Exception):
    """Raised when persisted job params or cursor have an unexpected shape."""

    pass


class FinderCursor(BaseModel):
    """Resume point for keyword-driven jobs.

    ``filtered_identifiers`` remembers products the cost filter rejected, so
    a product listed under several keywords is fetched and counted once.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["finder"] = "finder"
    keyword_index: int = Field(default=0, ge=0)
    page_number: int = Field(default=1, ge=1)
    collected_count: int = Field(default=0, ge=0)
    filtered_identifiers: tuple[str, ...] = ()

    @property
    def unit_index(self) -> int:
        return self.keyword_index

    @property
    def skip_identifiers(self) -> tuple[str, ...]:
        return self.filtered_identifiers

    def next_page(self, added: int = 0) -> "FinderCursor":
        return self.model_copy(
            update={
                "page_number": self.page_number + 1,
                "collected_count": self.collected_count + added,
            }
        )

    def next_unit(self, added: int = 0) -> "FinderCursor":
        return self.model_copy(
            update={
                "keyword_index": self.keyword_index + 1,
                "page_number": 1,
                "collected_count": self.collected_count + added,
            }
        )

    def remember(self, identifiers: list[str], capacity: int) -> "FinderCursor":
        """Add filtered-out identifiers, keeping the last ``capacity``."""
        merged = _bounded_merge(self.filtered_identifiers, identifiers, capacity)
        return self.model_copy(update={"filtered_identifiers": merged})


class ScannerCursor(BaseModel):
    """Resume point for category-driven jobs.

    ``seen_identifiers`` is a bounded cache of the most recently processed
    product ids (oldest first). The job's persisted items remain the
    authoritative record of what has been seen.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["scanner"] = "scanner"
    category_index: int = Field(default=0, ge=0)
    page_number: int = Field(default=1, ge=1)
    seen_identifiers: tuple[str, ...] = ()

    @property
    def unit_index(self) -> int:
        return self.category_index

    @property
    def skip_identifiers(self) -> tuple[str, ...]:
        return self.seen_identifiers

    def next_page(self, added: int = 0) -> "ScannerCursor":
        return self.model_copy(update={"page_number": self.page_number + 1})

    def next_unit(self, added: int = 0) -> "ScannerCursor":
        return self.model_copy(
            update={"category_index": self.category_index + 1, "page_number": 1}
        )

    def remember(self, identifiers: list[str], capacity: int) -> "ScannerCursor":
        """Append identifiers to the seen cache, keeping the last ``capacity``."""
        merged = _bounded_merge(self.seen_identifiers, identifiers, capacity)
        return self.model_copy(update={"seen_identifiers": merged})


def _bounded_merge(
    existing: tuple[str, ...], identifiers: list[str], capacity: int
) -> tuple[str, ...]:
    """Most recent last; re-seen ids move to the end."""
    if capacity <= 0:
        return ()
    incoming = set(identifiers)
    merged = [i for i in existing if i not in incoming]
    merged.extend(dict.fromkeys(identifiers))
    return tuple(merged[-capacity:])


Cursor = Annotated[Union[FinderCursor, ScannerCursor], Field(discriminator="kind")]


class JobParams(BaseModel):
    """Structured job configuration, including the resume cursor."""

    model_config = ConfigDict(extra="forbid")

    keywords: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    page_size: int = 20
    max_pages_per_unit: int = 5
    target_count: int | None = Field(default=None, ge=1)
    min_cost: Decimal | None = None
    max_cost: Decimal | None = None
    cursor: Cursor | None = None

    @field_validator("keywords", "category_ids")
    @classmethod
    def _strip_units(cls, values: list[str]) -> list[str]:
        return [v.strip() for v in values if v and v.strip()]

    @field_validator("page_size")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return clamp_page_size(value)

    @field_validator("max_pages_per_unit")
    @classmethod
    def _clamp_max_pages(cls, value: int) -> int:
        return clamp_max_pages(value)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def initial_cursor(job_kind: str) -> FinderCursor | ScannerCursor:
    """Return the starting cursor for a job kind."""
    tag = CURSOR_KIND_BY_JOB.get(str(getattr(job_kind, "value", job_kind)))
    if tag == "finder":
        return FinderCursor()
    if tag == "scanner":
        return ScannerCursor()
    raise CursorValidationError(f"No cursor defined for job kind {job_kind!r}")


def parse_job_params(job_kind: str, raw: dict[str, Any] | None) -> JobParams:
    """Validate persisted params and make sure the cursor fits the job kind."""
    try:
        params = JobParams.model_validate(raw or {})
    except ValidationError as e:
        raise CursorValidationError(f"Invalid job params: {e}") from e

    expected = initial_cursor(job_kind)
    if params.cursor is None:
        return params.model_copy(update={"cursor": expected})
    if params.cursor.kind != expected.kind:
        raise CursorValidationError(
            f"Cursor of kind {params.cursor.kind!r} does not belong to a "
            f"{getattr(job_kind, 'value', job_kind)} job"
        )
    return params
