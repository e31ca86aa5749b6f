"""SQLite-vec storage for raw content chunks and their embeddings."""

import sqlite3
import struct
from pathlib import Path

import sqlite_vec

from .records import ContentChunk, ImageChunk, chunk_from_record

_CHUNK_COLUMNS = "c.chunk_id, c.document_id, c.content_type, c.page_number, c.image_id, c.text"


def serialize_vector(vec: list[float]) -> bytes:
    """Serialize a vector to bytes for sqlite-vec."""
    return struct.pack(f"{len(vec)}f", *vec)


def _row_to_chunk(row: tuple) -> ContentChunk:
    return chunk_from_record(
        {
            "chunkId": row[0],
            "documentId": row[1],
            "contentType": row[2],
            "pageNumber": row[3],
            "imageId": row[4],
            "text": row[5],
        }
    )


class ChunkStore:
    """Direct-search index over content chunks (text passages and image descriptions)."""

    def __init__(self, db_path: Path | str, dimensions: int = 384):
        self.db_path = Path(db_path)
        self.dimensions = dimensions
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a connection with sqlite-vec loaded."""
        conn = sqlite3.connect(self.db_path)
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        return conn

    def _init_db(self):
        conn = self._get_conn()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY,
                chunk_id TEXT UNIQUE NOT NULL,
                document_id TEXT,
                content_type TEXT NOT NULL DEFAULT 'text',
                page_number INTEGER,
                image_id TEXT,
                text TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id)
        """)
        conn.execute(f"""
            CREATE VIRTUAL TABLE IF NOT EXISTS chunk_vectors USING vec0(
                embedding float[{self.dimensions}] distance_metric=cosine
            )
        """)
        conn.commit()
        conn.close()

    def add_chunk(self, chunk: ContentChunk, embedding: list[float]) -> int:
        """Add or replace a chunk with its embedding.

        Returns:
            The row ID of the chunk
        """
        if len(embedding) != self.dimensions:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimensions}, got {len(embedding)}"
            )
        image_id = chunk.image_id if isinstance(chunk, ImageChunk) else None
        values = (
            chunk.document_id,
            chunk.content_type,
            chunk.page_number,
            image_id,
            chunk.text,
        )

        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM chunks WHERE chunk_id = ?", (chunk.chunk_id,))
        existing = cursor.fetchone()

        if existing:
            row_id = existing[0]
            cursor.execute(
                """
                UPDATE chunks
                SET document_id = ?, content_type = ?, page_number = ?, image_id = ?, text = ?
                WHERE id = ?
                """,
                (*values, row_id),
            )
            cursor.execute("DELETE FROM chunk_vectors WHERE rowid = ?", (row_id,))
        else:
            cursor.execute(
                """
                INSERT INTO chunks (chunk_id, document_id, content_type, page_number, image_id, text)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (chunk.chunk_id, *values),
            )
            row_id = cursor.lastrowid
            if row_id is None:
                conn.close()
                raise RuntimeError("Failed to insert chunk")

        cursor.execute(
            "INSERT INTO chunk_vectors (rowid, embedding) VALUES (?, ?)",
            (row_id, serialize_vector(embedding)),
        )
        conn.commit()
        conn.close()
        return row_id

    def search(
        self, query_embedding: list[float], limit: int = 15
    ) -> list[tuple[ContentChunk, float]]:
        """Most similar chunks first, with cosine similarity scores."""
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, v.distance
            FROM chunk_vectors v
            JOIN chunks c ON c.id = v.rowid
            WHERE v.embedding MATCH ? AND k = ?
            ORDER BY v.distance
            """,
            (serialize_vector(query_embedding), max(1, limit)),
        )
        results = [(_row_to_chunk(row), 1.0 - row[6]) for row in cursor.fetchall()]
        conn.close()
        return results

    def get_chunks(self, chunk_ids: list[str]) -> list[ContentChunk]:
        """Fetch chunks by id; unknown ids are skipped."""
        if not chunk_ids:
            return []
        placeholders = ",".join("?" * len(chunk_ids))
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.chunk_id IN ({placeholders})",
            tuple(chunk_ids),
        )
        chunks = [_row_to_chunk(row) for row in cursor.fetchall()]
        conn.close()
        return chunks

    def list_documents(self) -> list[dict]:
        """Distinct document ids with chunk and image counts."""
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT document_id,
                   COUNT(*) AS chunk_count,
                   SUM(CASE WHEN content_type = 'image' THEN 1 ELSE 0 END) AS image_count
            FROM chunks
            WHERE document_id IS NOT NULL
            GROUP BY document_id
            ORDER BY document_id
        """)
        results = [
            {"document_id": row[0], "chunks": row[1], "images": row[2]}
            for row in cursor.fetchall()
        ]
        conn.close()
        return results

    def count(self) -> int:
        """Get the number of stored chunks."""
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM chunks")
        count = cursor.fetchone()[0]
        conn.close()
        return count

    def clear(self):
        """Clear all chunk data."""
        conn = self._get_conn()
        conn.execute("DELETE FROM chunks")
        conn.execute("DELETE FROM chunk_vectors")
        conn.commit()
        conn.close()
