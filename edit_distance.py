import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import numpy as np
from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 20000


def hamming_distance(seq1, seq2):
    """
    Compute the Hamming distance between two sequences.

    Sequences of different lengths have no Hamming distance; NaN is returned,
    which never compares as within any threshold.
    """
    if len(seq1) != len(seq2):
        return np.nan
    return sum(c1 != c2 for c1, c2 in zip(seq1, seq2))


def levenshtein_distance(seq1, seq2):
    """
    Compute the Levenshtein distance (unit cost substitutions, insertions and deletions).
    """
    return Levenshtein.distance(seq1, seq2)


def edit_distance(seq1, seq2, find_indels):
    """
    Levenshtein distance if `find_indels` is set, Hamming distance otherwise.
    """
    if find_indels:
        return levenshtein_distance(seq1, seq2)
    return hamming_distance(seq1, seq2)


def _as_code_points(sequence):
    return np.frombuffer(sequence.encode('utf-32-le', 'surrogatepass'), dtype=np.uint32)


def _hamming_neighbors(query, candidates, max_distance):
    same_length = [candidate for candidate in candidates if len(candidate) == len(query)]
    if not same_length:
        return set()
    if not query:
        return set(same_length)

    # one row of code points per candidate
    block = _as_code_points(''.join(same_length)).reshape(len(same_length), len(query))
    mismatches = np.count_nonzero(block != _as_code_points(query), axis=1)
    return {same_length[i] for i in np.flatnonzero(mismatches <= max_distance)}


def _levenshtein_neighbors(query, candidates, max_distance):
    return {
        candidate for candidate in candidates
        if Levenshtein.distance(query, candidate, score_cutoff=max_distance) <= max_distance
    }


def strings_within_edit_distance(query, candidates, max_distance, find_indels):
    """
    Find the candidates within `max_distance` edits of `query`.

    Parameters
    ----------
    query : str
        Barcode to compare against. Must not itself be one of the candidates.
    candidates : sequence of str
        Barcodes to test.
    max_distance : int
        Largest distance (inclusive) at which a candidate is returned.
    find_indels : bool
        If True, use Levenshtein distance so candidates may differ in length.
        If False, use Hamming distance: only candidates of the same length as
        `query` can be returned.

    Returns
    -------
    set of str
    """
    if max_distance < 0:
        raise ValueError(f'max_distance must be >= 0, got {max_distance}')
    if not candidates:
        return set()
    if find_indels:
        return _levenshtein_neighbors(query, candidates, max_distance)
    return _hamming_neighbors(query, candidates, max_distance)


class ThreadedEditDistance:
    """
    Run `strings_within_edit_distance` over blocks of candidates on a thread pool.

    Candidates are cut into contiguous blocks of `block_size`; every block is
    searched independently and the per-block results are unioned, so the
    answer is the same as the single threaded search whatever the thread count.

    Use it as a context manager to keep one pool for many searches:

        with ThreadedEditDistance(num_threads=4) as engine:
            close = engine.strings_within_edit_distance(query, candidates, 1, False)

    The pool is shared by nested or concurrent `with` blocks on the same
    engine and shut down when the last one exits. Outside a `with` block each
    call builds and tears down its own pool.
    """

    def __init__(self, num_threads, block_size=DEFAULT_BLOCK_SIZE):
        if num_threads < 1:
            raise ValueError(f'num_threads must be >= 1, got {num_threads}')
        if block_size < 1:
            raise ValueError(f'block_size must be >= 1, got {block_size}')
        self.num_threads = num_threads
        self.block_size = block_size
        self._executor = None
        self._users = 0
        self._lock = threading.Lock()

    def __enter__(self):
        with self._lock:
            self._users += 1
            if self._executor is None and self.num_threads > 1:
                self._executor = self._new_executor()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        with self._lock:
            self._users -= 1
            if self._users > 0:
                return
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def close(self):
        """
        Shut the pool down now, whoever is still using it.
        """
        with self._lock:
            executor, self._executor = self._executor, None
            self._users = 0
        if executor is not None:
            executor.shutdown(wait=True, cancel_futures=True)

    def _new_executor(self):
        return ThreadPoolExecutor(max_workers=self.num_threads, thread_name_prefix='edit-distance')

    def blocks(self, candidates):
        """
        Split the candidates into contiguous lists of at most `block_size` barcodes.
        """
        candidates = list(candidates)
        return [candidates[i:i + self.block_size] for i in range(0, len(candidates), self.block_size)]

    def strings_within_edit_distance(self, query, candidates, max_distance, find_indels):
        if max_distance < 0:
            raise ValueError(f'max_distance must be >= 0, got {max_distance}')
        if self.num_threads == 1 or len(candidates) <= self.block_size:
            return strings_within_edit_distance(query, candidates, max_distance, find_indels)
        blocks = self.blocks(candidates)
        with self._lock:
            executor = self._executor
        if executor is None:
            with self._new_executor() as executor:
                return self._search_blocks(executor, query, blocks, max_distance, find_indels)
        return self._search_blocks(executor, query, blocks, max_distance, find_indels)

    def _search_blocks(self, executor, query, blocks, max_distance, find_indels):
        futures = [
            executor.submit(strings_within_edit_distance, query, block, max_distance, find_indels)
            for block in blocks
        ]
        close_barcodes = set()
        try:
            for future in as_completed(futures):
                close_barcodes.update(future.result())
        except Exception:
            for future in futures:
                future.cancel()
            logger.error(f'Edit distance search for {query} failed; discarding results of {len(blocks)} blocks')
            raise
        return close_barcodes
