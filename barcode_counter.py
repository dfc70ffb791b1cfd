import logging

import pandas as pd

logger = logging.getLogger(__name__)


class BarcodeCounter:
    """
    Keep track of how many times each barcode has been observed.

    Counts are stored as given: incrementing by a negative amount is allowed,
    and a barcode whose count drops to 0 stays in the counter until it is removed.

    Parameters
    ----------
    counts : mapping, optional
        Initial barcode -> count mapping. It is copied, never aliased.
    """

    def __init__(self, counts=None):
        self._counts = dict(counts) if counts is not None else {}

    @classmethod
    def from_observations(cls, observations):
        """
        Build a counter from an iterable of observed barcodes, one entry per observation.
        """
        counter = cls()
        for barcode in observations:
            counter.increment(barcode)
        return counter

    @classmethod
    def from_dataframe(cls, df, barcode_column='barcode', count_column='count'):
        """
        Build a counter from a table of barcodes and counts.

        Rows sharing a barcode are summed.

        Parameters
        ----------
        df : pd.DataFrame
            Table containing `barcode_column` and `count_column`.
        barcode_column : str
            Column holding the barcode strings.
        count_column : str
            Column holding integer observation counts.

        Returns
        -------
        BarcodeCounter
        """
        missing_columns = [col for col in (barcode_column, count_column) if col not in df.columns]
        if missing_columns:
            logger.error(f'Missing required columns: {", ".join(missing_columns)}')
            raise ValueError(f'Required columns not found: {", ".join(missing_columns)}')

        grouped = df.groupby(barcode_column, sort=False)[count_column].sum()
        return cls({str(barcode): int(count) for barcode, count in grouped.items()})

    def to_dataframe(self, barcode_column='barcode', count_column='count'):
        """
        Return the counts as a DataFrame, ordered by decreasing count.
        """
        keys = self.keys_ordered_by_count(decreasing=True)
        return pd.DataFrame({
            barcode_column: keys,
            count_column: [self._counts[key] for key in keys],
        })

    def has_key(self, key):
        return key in self._counts

    def __contains__(self, key):
        return key in self._counts

    def __len__(self):
        return len(self._counts)

    def __iter__(self):
        return iter(self._counts)

    def __eq__(self, other):
        if not isinstance(other, BarcodeCounter):
            return NotImplemented
        return self._counts == other._counts

    def __repr__(self):
        return f'BarcodeCounter({self._counts!r})'

    def keys(self):
        return self._counts.keys()

    def items(self):
        return self._counts.items()

    def copy(self):
        return BarcodeCounter(self._counts)

    def clear(self):
        self._counts.clear()

    def increment(self, key, by=1):
        self._counts[key] = self._counts.get(key, 0) + by

    def set_count(self, key, value):
        self._counts[key] = value

    def remove(self, key):
        self._counts.pop(key, None)

    def count(self, key):
        return self._counts.get(key, 0)

    def total_count(self):
        return sum(self._counts.values())

    def number_of_size(self, size):
        """
        Number of barcodes observed exactly `size` times.
        """
        return sum(1 for value in self._counts.values() if value == size)

    def mode(self):
        """
        Most frequently observed barcode, or None for an empty counter.

        Equal counts are broken by the lexicographically smallest barcode.
        """
        if not self._counts:
            return None
        return min(self._counts, key=lambda key: (-self._counts[key], key))

    def filter_by_min_count(self, threshold):
        """
        Keep only barcodes observed at least `threshold` times. Mutates the counter.
        """
        before = len(self._counts)
        self._counts = {key: value for key, value in self._counts.items() if value >= threshold}
        logger.debug(f'Filtered by min count {threshold}: kept {len(self._counts)} of {before} barcodes')

    def keys_ordered_by_count(self, decreasing=True):
        """
        List every barcode sorted by count.

        Barcodes sharing a count are always listed in ascending lexicographic
        order, whichever direction the counts are sorted in.

        Parameters
        ----------
        decreasing : bool
            If True, the most frequent barcodes come first.

        Returns
        -------
        list of str
        """
        sign = -1 if decreasing else 1
        return sorted(self._counts, key=lambda key: (sign * self._counts[key], key))

    def reverse_mapping(self):
        """
        Map each count to the sorted list of barcodes observed that many times.
        """
        result = {}
        for key, value in self._counts.items():
            result.setdefault(value, []).append(key)
        for keys in result.values():
            keys.sort()
        return result
