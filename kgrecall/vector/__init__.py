"""Chunk records, embeddings and the direct-chunk index."""

from .records import ContentChunk, ImageChunk, TextChunk

__all__ = ["ContentChunk", "ImageChunk", "TextChunk"]
