"""Per-document word frequency tables."""

from collections import Counter
from typing import Iterable

from lexis_pipes.models import DocumentFrequencyTable


def build_frequency_table(
    tokens: Iterable[str], document_id: str = ""
) -> DocumentFrequencyTable:
    """Count the occurrences of each token in a document.

    Tokens are expected to be normalized already (see `transform.tokenize`).
    An empty sequence yields an empty table with a total of 0.

    Args:
        tokens: Sequence of normalized tokens
        document_id: Identifier of the document the tokens come from

    Returns:
        DocumentFrequencyTable ordered by count descending, then word

    Examples:
        >>> table = build_frequency_table(["καί", "λόγος", "καί"], "doc")
        >>> dict(table.counts)
        {'καί': 2, 'λόγος': 1}
        >>> table.frequency("καί")
        0.6666666666666666
    """
    return DocumentFrequencyTable(document_id=document_id, counts=Counter(tokens))
