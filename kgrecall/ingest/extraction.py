"""Schema and parse result for triplet-extractor output."""

from dataclasses import dataclass, field
import logging
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from ..errors import ValidationError

log = logging.getLogger(__name__)


class ExtractedTriplet(BaseModel):
    """One fact proposed by the extractor."""

    subject: str = Field(min_length=1)
    subject_label: str = "ENTITY"
    predicate: str = Field(min_length=1)
    object: str = Field(min_length=1)
    object_label: str = "ENTITY"


class ExtractionPayload(BaseModel):
    triplets: list[ExtractedTriplet] = Field(default_factory=list)


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of parsing one extractor response.

    A schema mismatch is reported through ``error`` rather than collapsing
    into an empty payload, so callers can tell "no facts" from "bad output".
    """

    triplets: tuple[ExtractedTriplet, ...] = field(default_factory=tuple)
    error: ValidationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_extraction(raw: Any) -> ExtractionResult:
    """Validate raw extractor output (a JSON string or decoded object)."""
    try:
        if isinstance(raw, (str, bytes)):
            payload = ExtractionPayload.model_validate_json(raw)
        else:
            payload = ExtractionPayload.model_validate(raw)
    except SchemaError as exc:
        log.warning(f"Extractor output failed schema validation: {exc.error_count()} errors")
        return ExtractionResult(
            error=ValidationError(f"Extractor output does not match schema: {exc}")
        )
    return ExtractionResult(triplets=tuple(payload.triplets))
