"""Aggregation of per-document frequency tables into a corpus table."""

import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from lexis_pipes.errors import AggregationConflictError
from lexis_pipes.models import CorpusTable, DocumentFrequencyTable, frequency_order

logger = logging.getLogger(__name__)


class CorpusAggregator:
    """Fold document frequency tables into a corpus table one at a time.

    Counts are merged by addition as each table arrives, so the result does
    not depend on the order in which tables are added. Input tables are never
    modified.

    Example:
        >>> aggregator = CorpusAggregator()
        >>> aggregator.add(build_frequency_table(["the", "cat"], "A"))
        >>> aggregator.add(build_frequency_table(["the", "dog"], "B"))
        >>> aggregator.build().row("the")
        {'A': 1, 'B': 1}
    """

    def __init__(self):
        self._documents: list[str] = []
        self._totals: dict[str, int] = {}
        self._counts: dict[str, dict[str, int]] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._totals

    def add(
        self, table: DocumentFrequencyTable, document_id: str | None = None
    ) -> None:
        """Merge a single document's table into the running aggregate.

        Args:
            table: Frequency table of one document
            document_id: Identifier to use instead of `table.document_id`

        Raises:
            AggregationConflictError: If the identifier was already added
        """
        document_id = table.document_id if document_id is None else document_id

        if document_id in self._totals:
            raise AggregationConflictError(
                f"Document '{document_id}' was already aggregated"
            )

        self._documents.append(document_id)
        self._totals[document_id] = table.total

        for word, count in table.counts.items():
            self._counts.setdefault(word, {})[document_id] = count

        logger.debug(f"Aggregated '{document_id}' ({table.total} tokens, {table.types} types)")

    def build(self) -> CorpusTable:
        """Return the corpus table for all documents added so far."""
        documents = tuple(self._documents)

        word_totals = {
            word: sum(per_document.values())
            for word, per_document in self._counts.items()
        }
        words = tuple(word for word, _ in sorted(word_totals.items(), key=frequency_order))

        rows = {
            word: tuple(self._counts[word].get(document_id, 0) for document_id in documents)
            for word in words
        }

        return CorpusTable(
            documents=documents,
            words=words,
            rows=MappingProxyType(rows),
            totals=MappingProxyType(dict(self._totals)),
        )


def aggregate(
    tables: Mapping[str, DocumentFrequencyTable] | Iterable[DocumentFrequencyTable],
) -> CorpusTable:
    """Aggregate frequency tables into a single word x document table.

    Args:
        tables: Either a mapping of document id to table, or an iterable of
            tables identified by their own `document_id`

    Returns:
        CorpusTable with one column per document. No tables yield an empty table.

    Raises:
        AggregationConflictError: If two tables share a document identifier
    """
    aggregator = CorpusAggregator()

    if isinstance(tables, Mapping):
        for document_id, table in tables.items():
            aggregator.add(table, document_id=document_id)
    else:
        for table in tables:
            aggregator.add(table)

    return aggregator.build()
