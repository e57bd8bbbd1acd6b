"""
Semantic index over ClickHouse.

Chunks are embedded with sentence-transformers and stored with their metadata
in a single table; similarity search ranks rows by 1 - cosineDistance, the
same way enriched spans are searched.

Filter expressions are simple boolean combinations over string metadata:
    type == 'telemetry'
    type == 'telemetry' && hasErrors == 'true'
    type == 'documentation' || source == 'README.md'
`&&` binds tighter than `||`.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import clickhouse_connect
from sentence_transformers import SentenceTransformer

from . import config

log = logging.getLogger(__name__)

# One token: a `key == 'value'` term or an operator. Quoted values are consumed
# whole, so `&&` / `||` inside a value never split the expression.
_TOKEN = re.compile(r"\s*(?:([A-Za-z_][A-Za-z0-9_.]*)\s*==\s*'((?:[^'\\]|\\.)*)'|(&&|\|\|))\s*")


class FilterExpressionError(ValueError):
    pass


@dataclass
class Document:
    text: str
    metadata: dict = field(default_factory=dict)
    score: float | None = None


def eq(key: str, value) -> str:
    """Build a `key == 'value'` term, escaping the value."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"{key} == '{escaped}'"


def parse_filter(expression: str) -> list[list[tuple[str, str]]]:
    """Parse into OR-groups of AND-ed (key, value) terms."""
    groups = []
    terms = []
    pos = 0
    expect_term = True
    while pos < len(expression):
        m = _TOKEN.match(expression, pos)
        key, value, op = m.groups() if m else (None, None, None)
        if expect_term and key is None or not expect_term and op is None:
            raise FilterExpressionError(f"Invalid filter expression at {pos}: {expression[pos:].strip()!r}")

        if key is not None:
            terms.append((key, re.sub(r"\\(.)", r"\1", value)))
        elif op == "||":
            groups.append(terms)
            terms = []
        expect_term = not expect_term
        pos = m.end()

    if expect_term:
        raise FilterExpressionError(f"Incomplete filter expression: {expression.strip()!r}")
    groups.append(terms)
    return groups


def filter_to_sql(expression: str | None, params: dict) -> str:
    """Render a filter as a parameterised WHERE fragment, adding values to params."""
    if not expression:
        return "1"
    ors = []
    for group in parse_filter(expression):
        ands = []
        for key, value in group:
            key_param = f"fk{len(params)}"
            params[key_param] = key
            value_param = f"fv{len(params)}"
            params[value_param] = value
            ands.append(f"Metadata[{{{key_param}:String}}] = {{{value_param}:String}}")
        ors.append("(" + " AND ".join(ands) + ")")
    return "(" + " OR ".join(ors) + ")"


def _metadata_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# Lazy-init globals
_ch_client = None
_model = None


def get_ch():
    global _ch_client
    if _ch_client is None:
        _ch_client = clickhouse_connect.get_client(
            host=config.CH_HOST,
            port=config.CH_PORT,
            username=config.CH_USER,
            password=config.CH_PASSWORD,
            database=config.CH_DATABASE,
        )
    return _ch_client


def get_model():
    global _model
    if _model is None:
        log.info("Loading embedding model %s ...", config.EMBEDDING_MODEL)
        _model = SentenceTransformer(config.EMBEDDING_MODEL)
    return _model


CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    ChunkId String,
    Content String,
    Metadata Map(LowCardinality(String), String),
    Embedding Array(Float32),
    CreatedAt DateTime64(3)
) ENGINE = MergeTree
ORDER BY ChunkId
"""

COLUMNS = ["ChunkId", "Content", "Metadata", "Embedding", "CreatedAt"]


class VectorStore:
    def __init__(self, client=None, model=None, table: str = config.CH_TABLE):
        self._client = client
        self._model = model
        self.table = table
        self._schema_ready = False

    @property
    def client(self):
        if self._client is None:
            self._client = get_ch()
        return self._client

    @property
    def model(self):
        if self._model is None:
            self._model = get_model()
        return self._model

    def ensure_schema(self):
        if not self._schema_ready:
            self.client.command(CREATE_TABLE.format(table=self.table))
            self._schema_ready = True

    def _embed(self, texts: list[str]) -> list[list[float]]:
        vectors = self.model.encode(texts, show_progress_bar=False, convert_to_numpy=True)
        return [v.tolist() for v in vectors]

    def add(self, documents: list[Document]) -> int:
        """Embed and insert all documents in one batch. Returns rows written."""
        if not documents:
            return 0
        self.ensure_schema()

        embeddings = self._embed([d.text for d in documents])
        now = datetime.now(timezone.utc)
        rows = [
            [
                uuid.uuid4().hex,
                doc.text,
                {k: _metadata_value(v) for k, v in doc.metadata.items()},
                embedding,
                now,
            ]
            for doc, embedding in zip(documents, embeddings)
        ]
        self.client.insert(self.table, rows, column_names=COLUMNS)
        log.info("Inserted %d chunks into %s", len(rows), self.table)
        return len(rows)

    def similarity_search(
        self,
        query: str,
        top_k: int,
        min_score: float = 0.0,
        filter_expression: str | None = None,
    ) -> list[Document]:
        self.ensure_schema()

        params: dict = {
            "emb": self._embed([query])[0],
            "min_score": min_score,
            "limit": top_k,
        }
        where = filter_to_sql(filter_expression, params)
        sql = f"""
        SELECT
            Content,
            Metadata,
            1 - cosineDistance(Embedding, {{emb:Array(Float32)}}) AS similarity
        FROM {self.table}
        WHERE {where}
          AND similarity >= {{min_score:Float32}}
        ORDER BY similarity DESC
        LIMIT {{limit:UInt32}}
        """
        result = self.client.query(sql, parameters=params)
        return [
            Document(text=content, metadata=dict(metadata), score=float(similarity))
            for content, metadata, similarity in result.result_rows
        ]

    def delete(self, filter_expression: str):
        """Delete every chunk matching the filter."""
        if not filter_expression:
            raise FilterExpressionError("delete requires a filter expression")
        self.ensure_schema()
        params: dict = {}
        where = filter_to_sql(filter_expression, params)
        self.client.command(f"DELETE FROM {self.table} WHERE {where}", parameters=params)
