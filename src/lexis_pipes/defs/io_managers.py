import json
from pathlib import Path

import dagster as dg

from lexis_pipes.models import DocumentFrequencyTable
from lexis_pipes.transform import table_from_dict, table_to_dict


class FrequencyTableIOManager(dg.ConfigurableIOManager):
    """I/O Manager that stores document frequency tables as local JSON files.

    Each partitioned table is stored as {storage_dir}/{document_id}.json, so
    every document is processed and stored independently of the others.
    Defaults to XDG_DATA_HOME/lexis-pipes/tables.
    """

    storage_dir: str

    def _get_path(self, context: dg.OutputContext | dg.InputContext) -> Path:
        """Get file path for a document partition."""
        if not context.has_partition_key:
            raise ValueError("FrequencyTableIOManager requires partitioned assets")

        document_id = context.partition_key
        base_path = Path(self.storage_dir)
        base_path.mkdir(parents=True, exist_ok=True)
        return base_path / f"{document_id}.json"

    def handle_output(self, context: dg.OutputContext, obj: DocumentFrequencyTable):
        """Save a frequency table to a JSON file."""
        path = self._get_path(context)
        path.write_text(
            json.dumps(table_to_dict(obj), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        context.log.info(f"Stored frequency table at {path}")

    def load_input(self, context: dg.InputContext) -> DocumentFrequencyTable:
        """Load a frequency table from a JSON file."""
        path = self._get_path(context)

        if not path.exists():
            raise FileNotFoundError(
                f"Frequency table not found: {path}. "
                "Materialize the document_frequency partition first."
            )

        context.log.info(f"Loaded frequency table from {path}")
        return table_from_dict(json.loads(path.read_text(encoding="utf-8")))
