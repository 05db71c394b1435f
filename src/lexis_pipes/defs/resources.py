from pathlib import Path

import dagster as dg

from lexis_pipes import db
from lexis_pipes.errors import InputError
from lexis_pipes.extract import DEFAULT_PATTERN, discover_documents
from lexis_pipes.models import (
    ConfidenceInterval,
    DocumentFrequencyTable,
    HomogeneityResult,
    Outcome,
    ProportionTestResult,
    Skipped,
)
from lexis_pipes.transform import load_frequency_tables


class CorpusStore(dg.ConfigurableResource):
    """Local folders holding the corpus documents and their frequency tables.

    Documents are plain UTF-8 text files anywhere below documents_dir. Each
    document's frequency table is stored as {tables_dir}/{document_id}.json.
    Defaults to XDG_DATA_HOME/lexis-pipes/documents and .../tables.
    """

    documents_dir: str
    tables_dir: str
    pattern: str = DEFAULT_PATTERN

    def discover_documents(self) -> dict[str, Path]:
        """Find all documents, keyed by document id."""
        return discover_documents(self.documents_dir, self.pattern)

    def document_path(self, document_id: str) -> Path:
        """Get the path of a single document.

        Raises:
            InputError: If no document has this id
        """
        documents = self.discover_documents()
        if document_id not in documents:
            raise InputError(f"Document '{document_id}' not found in {self.documents_dir}")
        return documents[document_id]

    def load_tables(
        self, document_ids: list[str]
    ) -> list[Outcome[DocumentFrequencyTable]]:
        """Load the stored tables of the given documents, in that order.

        A document without a stored table, or with a corrupt one, is reported
        as skipped.
        """
        loaded = {
            outcome.value.document_id if outcome.ok else outcome.skipped.subject: outcome
            for outcome in load_frequency_tables(self.tables_dir)
        }

        return [
            loaded.get(
                document_id,
                Outcome.failure("document", document_id, "no frequency table materialized"),
            )
            for document_id in document_ids
        ]


class AnalyticsDB(dg.ConfigurableResource):
    """SQLite database resource for analytics data.

    Wraps pure Python db module with Dagster resource pattern.
    Defaults to XDG_DATA_HOME/lexis-pipes/analytics.db.
    """

    db_path: str

    def get_connection(self):
        """Get a connection to the analytics database."""
        return db.get_connection(self.db_path)

    def replace_corpus(
        self, tables: list[DocumentFrequencyTable], stopwords: set[str] | None = None
    ) -> None:
        """Replace all documents and word counts in the database."""
        db.replace_corpus(self.db_path, tables, stopwords)

    def load_frequency_tables(self) -> list[DocumentFrequencyTable]:
        """Load the stored frequency tables in aggregation order."""
        return db.load_frequency_tables(self.db_path)

    def replace_skipped(self, stage: str, skipped: list[Skipped]) -> None:
        """Replace the skipped items of a single stage."""
        db.replace_skipped(self.db_path, stage, skipped)

    def load_skipped(self) -> list[Skipped]:
        """Load all skipped documents and tests."""
        return db.load_skipped(self.db_path)

    def replace_homogeneity_tests(self, results: list[HomogeneityResult]) -> None:
        """Replace all homogeneity test results in the database."""
        db.replace_homogeneity_tests(self.db_path, results)

    def replace_proportion_tests(
        self, comparisons: list[list[ProportionTestResult]]
    ) -> None:
        """Replace all proportion test results in the database."""
        db.replace_proportion_tests(self.db_path, comparisons)

    def load_proportion_tests(self) -> list[ProportionTestResult]:
        """Load all proportion test results."""
        return db.load_proportion_tests(self.db_path)

    def replace_confidence_intervals(self, intervals: list[ConfidenceInterval]) -> None:
        """Replace all confidence intervals in the database."""
        db.replace_confidence_intervals(self.db_path, intervals)
