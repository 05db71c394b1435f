from pathlib import Path

from dagster import Definitions, load_from_defs_folder

from lexis_pipes.config import DB_PATH, DOCUMENTS_DIR, TABLES_DIR
from lexis_pipes.defs.io_managers import FrequencyTableIOManager
from lexis_pipes.defs.resources import AnalyticsDB, CorpusStore


def _load_definitions() -> Definitions:
    """Load definitions with custom I/O manager."""
    loaded = load_from_defs_folder(path_within_project=Path(__file__).parent)

    return Definitions(
        assets=loaded.assets,
        asset_checks=loaded.asset_checks,
        schedules=loaded.schedules,
        sensors=loaded.sensors,
        jobs=loaded.jobs,
        resources={
            **(loaded.resources or {}),
            "frequency_table_io": FrequencyTableIOManager(storage_dir=str(TABLES_DIR)),
            "corpus_store": CorpusStore(
                documents_dir=str(DOCUMENTS_DIR), tables_dir=str(TABLES_DIR)
            ),
            "analytics_db": AnalyticsDB(db_path=str(DB_PATH)),
        },
    )


defs = _load_definitions()
