import pandas as pd
import pytest

from barcode_counter import BarcodeCounter


def test_increment_creates_and_adds() -> None:
    counter = BarcodeCounter()
    counter.increment("AAAA")
    counter.increment("AAAA", by=4)
    counter.increment("CCCC", by=-2)

    assert counter.count("AAAA") == 5
    assert counter.count("CCCC") == -2
    assert counter.count("GGGG") == 0
    assert "GGGG" not in counter


def test_set_count_and_remove() -> None:
    counter = BarcodeCounter({"AAAA": 3})
    counter.set_count("AAAA", 0)

    assert counter.has_key("AAAA")
    assert counter.count("AAAA") == 0

    counter.remove("AAAA")
    counter.remove("TTTT")
    assert len(counter) == 0


def test_constructor_copies_mapping() -> None:
    counts = {"AAAA": 1}
    counter = BarcodeCounter(counts)
    counter.increment("AAAA")

    assert counts == {"AAAA": 1}


def test_total_count_and_number_of_size() -> None:
    counter = BarcodeCounter({"A": 2, "C": 2, "G": 5})

    assert counter.total_count() == 9
    assert counter.number_of_size(2) == 2
    assert counter.number_of_size(7) == 0


def test_filter_by_min_count_mutates_in_place() -> None:
    counter = BarcodeCounter({"A": 1, "C": 2, "G": 3})
    counter.filter_by_min_count(2)

    assert sorted(counter.keys()) == ["C", "G"]


def test_keys_ordered_by_count_breaks_ties_lexicographically() -> None:
    counter = BarcodeCounter({"TT": 5, "AA": 5, "GG": 9, "CC": 1, "AC": 1})

    assert counter.keys_ordered_by_count(decreasing=True) == ["GG", "AA", "TT", "AC", "CC"]
    assert counter.keys_ordered_by_count(decreasing=False) == ["AC", "CC", "AA", "TT", "GG"]


def test_mode_and_reverse_mapping() -> None:
    counter = BarcodeCounter({"TT": 5, "AA": 5, "CC": 1})

    assert counter.mode() == "AA"
    assert counter.reverse_mapping() == {5: ["AA", "TT"], 1: ["CC"]}
    assert BarcodeCounter().mode() is None


def test_from_observations() -> None:
    counter = BarcodeCounter.from_observations(["AC", "AC", "GT"])

    assert counter == BarcodeCounter({"AC": 2, "GT": 1})


def test_dataframe_round_trip_sums_duplicate_rows() -> None:
    df = pd.DataFrame({"barcode": ["AC", "GT", "AC"], "count": [1, 4, 2]})
    counter = BarcodeCounter.from_dataframe(df)

    assert counter.count("AC") == 3
    out = counter.to_dataframe()
    assert out["barcode"].tolist() == ["GT", "AC"]
    assert out["count"].tolist() == [4, 3]


def test_from_dataframe_requires_columns() -> None:
    df = pd.DataFrame({"cellbc": ["AC"], "count": [1]})

    with pytest.raises(ValueError, match="barcode"):
        BarcodeCounter.from_dataframe(df)


def test_copy_is_independent() -> None:
    counter = BarcodeCounter({"AC": 1})
    copied = counter.copy()
    copied.increment("AC")

    assert counter.count("AC") == 1
    assert copied.count("AC") == 2
