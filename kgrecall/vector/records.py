"""Content chunk records supplied by the extraction pipeline.

Chunks are validated once, where they enter the system (JSONL import or a
chunk-store row), so the rest of the pipeline works with typed fields.
"""

from dataclasses import dataclass
from typing import Any, Literal

from ..errors import ValidationError

_DOCUMENT_ID_KEYS = ("documentId", "document_id", "from_document", "fromDocument", "docId", "document")


@dataclass(frozen=True)
class TextChunk:
    chunk_id: str
    text: str
    document_id: str | None = None
    page_number: int | None = None
    content_type: Literal["text"] = "text"


@dataclass(frozen=True)
class ImageChunk:
    """Generated description of an extracted image."""

    chunk_id: str
    text: str
    image_id: str
    document_id: str | None = None
    page_number: int | None = None
    content_type: Literal["image"] = "image"


ContentChunk = TextChunk | ImageChunk


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int)):
        raise ValidationError(f"Expected string, got {type(value).__name__}")
    text = str(value).strip()
    return text or None


def resolve_document_id(raw: dict[str, Any]) -> str | None:
    """First non-empty document id among the known aliases."""
    for key in _DOCUMENT_ID_KEYS:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _page_number(raw: dict[str, Any]) -> int | None:
    value = raw.get("pageNumber", raw.get("page_number"))
    if value is None or value == "":
        return None
    try:
        page = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid page number: {value!r}") from exc
    if page < 1:
        raise ValidationError(f"Page number must be positive, got {page}")
    return page


def chunk_from_record(raw: dict[str, Any]) -> ContentChunk:
    """Build a typed chunk from a loosely-typed record.

    Raises:
        ValidationError: missing id, unknown content type, image without id.
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"Chunk record must be an object, got {type(raw).__name__}")

    chunk_id = _clean_str(raw.get("chunkId", raw.get("chunk_id", raw.get("id"))))
    if not chunk_id:
        raise ValidationError("Chunk record has no id")

    text = raw.get("text")
    if text is None:
        text = ""
    if not isinstance(text, str):
        raise ValidationError(f"Chunk {chunk_id} text must be a string")

    content_type = raw.get("contentType", raw.get("content_type", "text")) or "text"
    document_id = resolve_document_id(raw)
    page_number = _page_number(raw)

    if content_type == "text":
        return TextChunk(
            chunk_id=chunk_id,
            text=text,
            document_id=document_id,
            page_number=page_number,
        )
    if content_type == "image":
        image_id = _clean_str(raw.get("imageId", raw.get("image_id")))
        if not image_id:
            raise ValidationError(f"Image chunk {chunk_id} has no image id")
        return ImageChunk(
            chunk_id=chunk_id,
            text=text,
            image_id=image_id,
            document_id=document_id,
            page_number=page_number,
        )
    raise ValidationError(f"Unknown content type for chunk {chunk_id}: {content_type!r}")
