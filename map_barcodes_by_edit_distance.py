import logging
import time

from barcode_counter import BarcodeCounter
from edit_distance import DEFAULT_BLOCK_SIZE, ThreadedEditDistance

logger = logging.getLogger(__name__)

# progress lines are only worth writing for large barcode spaces
PROGRESS_MIN_BARCODES = 10000


class BarcodeCollapseError(RuntimeError):
    """Raised when the collapse reaches an inconsistent state."""


class MapBarcodesByEditDistance:
    """
    Collapse barcodes onto more frequently observed barcodes within an edit distance.

    The result maps every retained ("core") barcode to the sorted list of
    barcodes merged into it. Larger barcodes always absorb smaller ones: each
    barcode appears once in the result, assigned to the first core barcode in
    processing order that is close enough.

    Parameters
    ----------
    verbose : bool
        If True, log a summary (duration, barcodes collapsed) after each collapse.
    num_threads : int
        Number of threads searching for close barcodes in each round. 1 runs
        everything on the calling thread.
    report_progress_interval : int
        Log progress every this many core barcodes. 0 disables progress logging.
    block_size : int
        Number of candidate barcodes handed to a thread at a time.
    """

    def __init__(self, verbose=False, num_threads=1, report_progress_interval=100000, block_size=DEFAULT_BLOCK_SIZE):
        if report_progress_interval < 0:
            raise ValueError(f'report_progress_interval must be >= 0, got {report_progress_interval}')
        self.verbose = verbose
        self.report_progress_interval = report_progress_interval
        self._engine = ThreadedEditDistance(num_threads=num_threads, block_size=block_size)

    @property
    def num_threads(self):
        return self._engine.num_threads

    def collapse_barcodes(self, barcodes, find_indels, edit_distance, core_barcodes=None):
        """
        Collapse barcodes by edit distance.

        Core barcodes are visited in order (from largest to smallest when they
        are taken from `barcodes`). Each one claims every barcode still
        unassigned that lies within `edit_distance`; a claimed barcode is
        removed from the pool and can no longer absorb anything, even if it was
        itself a core barcode. Barcodes outside `core_barcodes` may be absorbed
        but never absorb others, and are left out of the result when nothing
        claims them. Restricting the core barcodes (e.g. to the expected number
        of cells) keeps the work small when the barcode pool is much larger.

        Caller-supplied `core_barcodes` are processed in the order given, not
        re-sorted by count, so an earlier core barcode with a lower count can
        absorb a later, more frequent one. Only with the default order does a
        barcode never absorb one observed more often than itself.

        Parameters
        ----------
        barcodes : BarcodeCounter
            Every barcode (core and non-core) with its observation count. Not modified.
        find_indels : bool
            If True, use Levenshtein distance; otherwise Hamming distance.
        edit_distance : int
            Maximum distance at which two barcodes are collapsed.
        core_barcodes : sequence of str, optional
            Barcodes allowed to absorb others, in processing order. Defaults to
            all barcodes ordered by decreasing count, ties broken lexicographically.

        Returns
        -------
        dict
            Core barcode -> sorted list of barcodes merged into it.
        """
        if edit_distance < 0:
            raise ValueError(f'edit_distance must be >= 0, got {edit_distance}')
        if core_barcodes is None:
            core_barcodes = barcodes.keys_ordered_by_count(decreasing=True)
        else:
            core_barcodes = list(core_barcodes)
            missing = [barcode for barcode in core_barcodes if barcode not in barcodes]
            if missing:
                logger.error(f'{len(missing)} core barcodes have no count, e.g. {missing[:5]}')
                raise ValueError(f'Core barcodes not found in barcode counts: {missing[:5]}')

        # ordered working pool; dict keys give O(1) removal
        remaining = dict.fromkeys(barcodes.keys_ordered_by_count(decreasing=True))
        absorbed = set()
        result = {}
        rounds = 0
        num_collapsed = 0
        start_time = time.monotonic()

        with self._engine as engine:
            for barcode in core_barcodes:
                if barcode in absorbed:
                    continue
                if barcode in result:
                    logger.error(f'Core barcode {barcode} was already processed')
                    raise BarcodeCollapseError(f'Core barcode {barcode} already has a collapse result')
                rounds += 1
                remaining.pop(barcode, None)

                close_barcodes = engine.strings_within_edit_distance(barcode, list(remaining), edit_distance, find_indels)
                result[barcode] = sorted(close_barcodes)
                num_collapsed += len(close_barcodes)

                for close_barcode in close_barcodes:
                    del remaining[close_barcode]
                absorbed.update(close_barcodes)

                if self.report_progress_interval and rounds % self.report_progress_interval == 0:
                    if len(barcodes) > PROGRESS_MIN_BARCODES:
                        logger.info(f'Processed {rounds} core barcodes, barcode space left {len(remaining)}, '
                                    f'collapsed this set {num_collapsed}')
                    num_collapsed = 0

        if self.verbose:
            duration = time.monotonic() - start_time
            logger.info(f'Collapse with {self.num_threads} threads took {duration:.1f} seconds to process')
            logger.info(f'Started with core barcodes {len(core_barcodes)} ended with {rounds} '
                        f'num collapsed {len(core_barcodes) - rounds}')
        return result


def correct_barcode_counts(barcodes, mapping):
    """
    Fold the counts of merged barcodes into their core barcode.

    Parameters
    ----------
    barcodes : BarcodeCounter
        Original barcode counts. Not modified.
    mapping : dict
        Output of `MapBarcodesByEditDistance.collapse_barcodes`.

    Returns
    -------
    BarcodeCounter
        Corrected counts. Barcodes absent from the mapping keep their own count.
    """
    corrected = BarcodeCounter()
    merged_into = {merged: core for core, merged_barcodes in mapping.items() for merged in merged_barcodes}
    for barcode, count in barcodes.items():
        corrected.increment(merged_into.get(barcode, barcode), count)
    return corrected
