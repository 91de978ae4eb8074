"""
Tests for the command line interface.
"""

import json

import pytest

from conftest import make_pdf, page_texts
from exam_sorter.core.exceptions import InvalidInputError
from exam_sorter.main import load_label_entries, main


@pytest.fixture
def exams(tmp_path):
    paths = []
    for name in ("alpha.pdf", "beta.pdf"):
        path = tmp_path / name
        path.write_bytes(make_pdf(2, prefix=name[:-4]))
        paths.append(path)
    return paths


def test_split(tmp_path, exams):
    """Test an offline split writes one PDF per problem."""
    labels = tmp_path / "labels.json"
    labels.write_text(json.dumps([
        {"name": "Ada", "labels": {"1": [1], "2": [2]}},
        {"name": "Bob", "labels": {"1": [2], "2": [-1]}},
    ]))
    output = tmp_path / "out"

    code = main(["split", *map(str, exams), "--labels", str(labels), "--output", str(output)])

    assert code == 0
    assert sorted(p.name for p in output.iterdir()) == ["Problem_1.pdf", "Problem_2.pdf"]
    texts = page_texts((output / "Problem_2.pdf").read_bytes())
    assert len(texts) == 2
    assert "alpha 2" in texts[0]
    assert "beta 1" in texts[1]


def test_split_reports_failed_students(tmp_path, exams):
    """Test a student that cannot be stamped makes the exit code non-zero."""
    labels = tmp_path / "labels.json"
    labels.write_text(json.dumps({
        "alpha.pdf": {"name": "Ada", "labels": {"1": [1]}},
        "beta.pdf": {"name": "Bob", "labels": {"9": [1]}},
    }))

    code = main(["split", *map(str, exams), "--labels", str(labels), "--output", str(tmp_path / "out")])

    assert code == 1
    assert (tmp_path / "out" / "Problem_1.pdf").exists()


def test_load_label_entries_mismatch(tmp_path, exams):
    """Test a labels file that does not cover every PDF is rejected."""
    labels = tmp_path / "labels.json"
    labels.write_text(json.dumps([{"name": "Ada", "labels": {}}]))

    with pytest.raises(InvalidInputError):
        load_label_entries(labels, exams)

    assert main(["split", *map(str, exams), "--labels", str(labels)]) == 2
