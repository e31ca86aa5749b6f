"""Query options for hybrid recall."""

from dataclasses import dataclass, field, replace

from ..errors import UserInputError


@dataclass(frozen=True)
class QueryOptions:
    """Options recognized by ``ask``."""

    similarity_top_k: int = 5
    path_depth: int = 2
    limit: int = 30
    cross_check_boost: bool = True
    cross_check_boost_factor: float = 1.25
    document_filter: tuple[str, ...] = field(default_factory=tuple)

    direct_top_k: int = 15
    context_passages: int = 8

    def validate(self) -> "QueryOptions":
        """Reject out-of-range options before any call is issued."""
        if self.similarity_top_k <= 0:
            raise UserInputError("similarity_top_k must be > 0")
        if self.path_depth < 0:
            raise UserInputError("path_depth must be >= 0")
        if self.limit <= 0:
            raise UserInputError("limit must be > 0")
        if self.cross_check_boost_factor < 1.0:
            raise UserInputError("cross_check_boost_factor must be >= 1")
        if self.direct_top_k <= 0:
            raise UserInputError("direct_top_k must be > 0")
        if self.context_passages <= 0:
            raise UserInputError("context_passages must be > 0")
        return self

    def with_filter(self, documents: list[str] | tuple[str, ...]) -> "QueryOptions":
        """Copy with a new document filter; blank entries are dropped."""
        cleaned = tuple(d.strip() for d in documents if d and d.strip())
        return replace(self, document_filter=cleaned)


DEFAULT_QUERY_OPTIONS = QueryOptions()
