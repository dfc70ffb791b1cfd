import logging

import pandas as pd
import pytest

import collapse_barcodes_by_edit_distance
from logging_utils import setup_logging


def _write_counts(path, rows):
    pd.DataFrame(rows, columns=["barcode", "count"]).to_csv(path, sep="\t", index=False)


def test_main_writes_member_and_cluster_tables(tmp_path) -> None:
    input_file = tmp_path / "counts.tsv"
    output_file = tmp_path / "collapsed.tsv"
    cluster_output = tmp_path / "clusters.tsv"
    _write_counts(input_file, [("AAAA", 10), ("AAAT", 3), ("TTTT", 5)])

    mapping = collapse_barcodes_by_edit_distance.main(
        input_file=str(input_file),
        output_file=str(output_file),
        cluster_output=str(cluster_output),
        compute_distance=True,
    )

    assert mapping == {"AAAA": ["AAAT"], "TTTT": []}

    members = pd.read_csv(output_file, sep="\t")
    assert members.columns.tolist() == ["barcode", "core_barcode", "count", "edit_distance"]
    assert dict(zip(members["barcode"], members["core_barcode"])) == {"AAAA": "AAAA", "AAAT": "AAAA", "TTTT": "TTTT"}
    assert dict(zip(members["barcode"], members["edit_distance"])) == {"AAAA": 0, "AAAT": 1, "TTTT": 0}

    clusters = pd.read_csv(cluster_output, sep="\t")
    assert clusters["core_barcode"].tolist() == ["AAAA", "TTTT"]
    assert clusters["size"].tolist() == [13, 5]
    assert clusters["number_of_barcodes"].tolist() == [2, 1]
    assert clusters["barcodes"].tolist() == ["AAAA,AAAT", "TTTT"]


def test_main_with_core_barcodes_file(tmp_path) -> None:
    input_file = tmp_path / "counts.tsv"
    output_file = tmp_path / "collapsed.tsv"
    core_file = tmp_path / "core.txt"
    _write_counts(input_file, [("AAAA", 10), ("AAAT", 3), ("CCCC", 7)])
    core_file.write_text("AAAA\nNNNN\n\n")

    mapping = collapse_barcodes_by_edit_distance.main(
        input_file=str(input_file),
        output_file=str(output_file),
        core_barcodes_file=str(core_file),
    )

    assert mapping == {"AAAA": ["AAAT"]}
    members = pd.read_csv(output_file, sep="\t")
    assert sorted(members["barcode"]) == ["AAAA", "AAAT"]


def test_main_top_core_barcodes_and_min_count(tmp_path) -> None:
    input_file = tmp_path / "counts.tsv"
    output_file = tmp_path / "collapsed.tsv"
    _write_counts(input_file, [("AC", 5), ("A", 4), ("GGT", 3), ("GT", 1)])

    mapping = collapse_barcodes_by_edit_distance.main(
        input_file=str(input_file),
        output_file=str(output_file),
        find_indels=True,
        num_core_barcodes=1,
        min_count=2,
    )

    assert mapping == {"AC": ["A"]}


def test_main_requires_columns(tmp_path) -> None:
    input_file = tmp_path / "counts.tsv"
    pd.DataFrame({"cellbc": ["AAAA"], "umi_counts": [1]}).to_csv(input_file, sep="\t", index=False)

    with pytest.raises(ValueError):
        collapse_barcodes_by_edit_distance.main(input_file=str(input_file), output_file=str(tmp_path / "out.tsv"))


def test_setup_logging_writes_dated_log_file(tmp_path) -> None:
    log_folder = tmp_path / "logs"

    logger = setup_logging("collapse_test", log_folder=str(log_folder))
    logging.getLogger("collapse_test").info("hello")
    for handler in logger.handlers:
        handler.flush()

    log_files = list(log_folder.glob("*.collapse_test.log"))
    assert len(log_files) == 1
    assert "hello" in log_files[0].read_text()

    # back to console only
    setup_logging("collapse_test")
