import pytest

from lexis_pipes.corpus import aggregate
from lexis_pipes.frequency import build_frequency_table

ILIAD = "Μῆνιν ἄειδε θεὰ Πηληϊάδεω Ἀχιλῆος οὐλομένην, ἣ μυρί’ Ἀχαιοῖς ἄλγε’ ἔθηκε."
ODYSSEY = "Ἄνδρα μοι ἔννεπε, Μοῦσα, πολύτροπον, ὃς μάλα πολλὰ πλάγχθη."
HYMN = "Μοῦσά μοι ἔννεπε ἔργα πολυχρύσου Ἀφροδίτης. Μοῦσα θεὰ ἄειδε."


@pytest.fixture
def cat_dog_tables():
    """Two tiny English documents sharing a single word."""
    return {
        "A": build_frequency_table(["the", "cat", "sat"], "A"),
        "B": build_frequency_table(["the", "dog", "ran"], "B"),
    }


@pytest.fixture
def cat_dog_corpus(cat_dog_tables):
    return aggregate(cat_dog_tables)


@pytest.fixture
def documents_dir(tmp_path):
    """Corpus folder with three Greek documents, one in a subfolder, and an empty one."""
    root = tmp_path / "documents"
    (root / "homer").mkdir(parents=True)
    (root / "homer" / "iliad.txt").write_text(ILIAD, encoding="utf-8")
    (root / "homer" / "odyssey.txt").write_text(ODYSSEY, encoding="utf-8")
    (root / "hymn.txt").write_text(HYMN, encoding="utf-8")
    (root / "blank.txt").write_text("  12 · ;\n", encoding="utf-8")
    (root / "notes.md").write_text("not a document", encoding="utf-8")
    return root
