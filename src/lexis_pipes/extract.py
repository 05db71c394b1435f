import logging
from pathlib import Path

from lexis_pipes.errors import AggregationConflictError, InputError

logger = logging.getLogger(__name__)

# Plain text documents are the default input; a corpus folder may also hold
# notes, metadata or exports that should not be counted.
DEFAULT_PATTERN = "*.txt"


def discover_documents(
    documents_dir: str | Path, pattern: str = DEFAULT_PATTERN
) -> dict[str, Path]:
    """Find all documents in a folder and its subfolders.

    The document identifier is the file name without extension, so
    `books/iliad_01.txt` becomes `iliad_01`.

    Args:
        documents_dir: Folder to scan
        pattern: Glob pattern for document files

    Returns:
        Mapping of document id to path, sorted by document id

    Raises:
        InputError: If the folder does not exist
        AggregationConflictError: If two files share the same identifier
            (e.g., `a/hymn.txt` and `b/hymn.txt`)
    """
    root = Path(documents_dir)
    if not root.is_dir():
        raise InputError(f"Documents folder not found: {root}")

    documents: dict[str, Path] = {}
    for path in sorted(root.rglob(pattern)):
        if not path.is_file():
            continue

        document_id = path.stem
        if document_id in documents:
            raise AggregationConflictError(
                f"Duplicate document id '{document_id}': "
                f"{documents[document_id]} and {path}"
            )
        documents[document_id] = path

    logger.info(f"Found {len(documents)} documents in {root}")
    return dict(sorted(documents.items()))


def read_document(path: str | Path) -> str:
    """Read the text of a single document.

    A UTF-8 byte order mark, common in files saved by Windows editors, is
    removed.

    Raises:
        InputError: If the file cannot be read or is not valid UTF-8
    """
    path = Path(path)
    try:
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise InputError(f"{path.name} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise InputError(f"Could not read {path}: {e}") from e
