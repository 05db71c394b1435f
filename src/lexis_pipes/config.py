import os
from pathlib import Path

# We store files relative to the XDG Base Directory specification
XDG_DATA = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))

# The root is the data directory, which contains the output database and
# subdirectories for files we want to keep in the local file system. The
# directories are created by the resources that write to them.
DATA_ROOT = Path(os.getenv("LEXIS_PIPES_DATA", XDG_DATA / "lexis-pipes"))

# Corpus documents, one UTF-8 text file per document
DOCUMENTS_DIR = DATA_ROOT / "documents"

# Per-document frequency tables, one JSON file per document
TABLES_DIR = DATA_ROOT / "tables"

# CSV exports of the corpus table and comparison results
EXPORT_DIR = DATA_ROOT / "export"

DB_PATH = DATA_ROOT / "analytics.db"
