from kgrecall.retrieval.renderer import (
    render_context,
    render_context_with_meta,
    sanitize_context_text,
)
from kgrecall.retrieval.types import ResultMetadata, RetrievalResult


def _result(text, *, doc=None, page=None, content_type="text"):
    return RetrievalResult(
        text=text,
        score=0.5,
        metadata=ResultMetadata(document_id=doc, page_number=page, content_type=content_type),
        channel="direct",
    )


def test_sanitize_drops_bookkeeping_lines():
    text = "\n".join(
        [
            "Open the valve slowly.",
            "urn:hkv:prop:pageNumber 4",
            "x http://www.w3.org/1999/02/22-rdf-syntax-ns#type Component",
            "triplet_source_id: abc",
            "DocumentId: manual",
            "valve FROM_DOCUMENT manual",
            "",
            "Then check the gauge.",
        ]
    )

    assert sanitize_context_text(text) == "Open the valve slowly.\nThen check the gauge."
    assert sanitize_context_text(None) == ""


def test_render_context_source_info():
    blocks = render_context(
        [
            _result("Text passage", doc="Manual", page=3),
            _result("A wiring diagram", doc="Manual", page=5, content_type="image"),
            _result("Graph fact"),
        ]
    )

    assert blocks == [
        "[1] (from: Manual, page 3)\nText passage",
        "[2] (from: Manual, page 5, [IMAGE DESCRIPTION])\nA wiring diagram",
        "[3] (from: graph)\nGraph fact",
    ]


def test_render_context_limits_passages_and_skips_empty():
    results = [_result("urn:hkv:prop:only")] + [_result(f"p{i}") for i in range(10)]

    blocks = render_context(results, max_passages=3)

    assert [b.splitlines()[1] for b in blocks] == ["p0", "p1", "p2"]
    assert blocks[0].startswith("[1] ")


def test_render_context_token_budget():
    results = [_result("x" * 400) for _ in range(3)]

    blocks, rendered, truncated = render_context_with_meta(results, max_passages=8, max_tokens=150)

    assert len(blocks) == 1
    assert rendered == results[:1]
    assert truncated is True

    blocks, rendered, truncated = render_context_with_meta(results, max_passages=8)
    assert len(blocks) == 3
    assert len(rendered) == 3
    assert truncated is False


def test_render_context_reports_rendered_results():
    junk = _result("documentId: x\nfrom_document y", doc="Junk-Doc")
    real = _result("Real text", doc="Manual")

    blocks, rendered, _ = render_context_with_meta([junk, real], max_passages=1)

    assert blocks == ["[1] (from: Manual)\nReal text"]
    assert rendered == [real]


def test_render_context_empty():
    assert render_context([]) == []
