import argparse
import logging
from datetime import datetime

import pandas as pd

from barcode_counter import BarcodeCounter
from edit_distance import edit_distance as compute_edit_distance
from logging_utils import setup_logging
from map_barcodes_by_edit_distance import MapBarcodesByEditDistance, correct_barcode_counts

logger = logging.getLogger(__name__)


def load_core_barcodes(core_barcodes_file, barcodes):
    """
    Load core barcodes (one per line) and keep those present in the barcode counts.

    Parameters
    ----------
    core_barcodes_file : str
        Path to a text file with one barcode per line. Blank lines are skipped.
    barcodes : BarcodeCounter
        Observed barcode counts.

    Returns
    -------
    list of str
        Core barcodes in file order, duplicates and unknown barcodes removed.
    """
    with open(core_barcodes_file, 'r') as f:
        listed = [line.strip() for line in f if line.strip()]
    core_barcodes = list(dict.fromkeys(barcode for barcode in listed if barcode in barcodes))
    unknown = len(set(listed)) - len(core_barcodes)
    if unknown:
        logger.warning(f'{unknown} core barcodes in {core_barcodes_file} were not observed and are ignored')
    return core_barcodes


def build_member_table(mapping, barcodes, find_indels, compute_distance):
    """
    One row per barcode in the collapse result: core barcodes map to themselves.
    """
    rows = []
    for core_barcode, merged_barcodes in mapping.items():
        for barcode in [core_barcode, *merged_barcodes]:
            row = {
                "barcode": barcode,
                "core_barcode": core_barcode,
                "count": barcodes.count(barcode),
            }
            if compute_distance:
                row["edit_distance"] = compute_edit_distance(barcode, core_barcode, find_indels)
            rows.append(row)
    columns = ["barcode", "core_barcode", "count"] + (["edit_distance"] if compute_distance else [])
    return pd.DataFrame(rows, columns=columns)


def build_cluster_table(mapping, barcodes):
    """
    One row per core barcode with its corrected size and merged barcodes.
    """
    corrected = correct_barcode_counts(barcodes, mapping)
    rows = [
        {
            "core_barcode": core_barcode,
            "size": corrected.count(core_barcode),
            "number_of_barcodes": len(merged_barcodes) + 1,
            "barcodes": ",".join([core_barcode, *merged_barcodes]),
        }
        for core_barcode, merged_barcodes in mapping.items()
    ]
    cluster_df = pd.DataFrame(rows, columns=["core_barcode", "size", "number_of_barcodes", "barcodes"])
    return cluster_df.sort_values(["size", "core_barcode"], ascending=[False, True]).reset_index(drop=True)


def main(input_file, output_file, barcode_column="barcode", count_column="count", edit_distance=1,
         find_indels=False, num_threads=1, min_count=None, core_barcodes_file=None, num_core_barcodes=None,
         cluster_output=None, compute_distance=False, separator="\t", report_progress_interval=100000,
         verbose=False):
    """
    Collapse a table of barcode counts by edit distance.

    Steps:
    1. Load barcode counts and optionally drop barcodes seen fewer than `min_count` times.
    2. Pick core barcodes: from `core_barcodes_file`, else the `num_core_barcodes`
       most frequent barcodes, else every barcode.
    3. Collapse barcodes onto core barcodes, largest first.
    4. Save one row per barcode with its core barcode, and optionally a per-cluster summary.

    Parameters
    ----------
    input_file : str
        Table with a barcode column and a count column.
    output_file : str
        Path to save the barcode -> core barcode table.
    barcode_column, count_column : str
        Column names in the input table.
    edit_distance : int
        Maximum edit distance for collapsing.
    find_indels : bool
        If True, use Levenshtein distance; otherwise Hamming distance.
    num_threads : int
        Threads used for each round's distance search.
    min_count : int, optional
        Drop barcodes observed fewer times than this before collapsing.
    core_barcodes_file : str, optional
        File listing the barcodes allowed to absorb others.
    num_core_barcodes : int, optional
        Use the top N barcodes by count as core barcodes (e.g. the expected number of cells).
    cluster_output : str, optional
        Path to save the per-cluster summary. Disabled if None.
    compute_distance : bool
        If True, add the distance between each barcode and its core barcode.
    separator : str
        Separator of input and output tables.
    report_progress_interval : int
        Log progress every this many core barcodes.
    verbose : bool
        Log a summary of the collapse.
    """
    logger.info(f'Loading barcode counts {input_file}...')
    counts_df = pd.read_csv(input_file, sep=separator, dtype={barcode_column: str}, keep_default_na=False)
    barcodes = BarcodeCounter.from_dataframe(counts_df, barcode_column, count_column)
    logger.info(f'Loaded {len(barcodes)} unique barcodes with {barcodes.total_count()} total observations')

    if min_count is not None:
        barcodes.filter_by_min_count(min_count)
        logger.info(f'Barcodes with count >= {min_count}: {len(barcodes)}')

    core_barcodes = None
    if core_barcodes_file is not None:
        core_barcodes = load_core_barcodes(core_barcodes_file, barcodes)
        logger.info(f'Using {len(core_barcodes)} core barcodes from {core_barcodes_file}')
    elif num_core_barcodes is not None:
        core_barcodes = barcodes.keys_ordered_by_count(decreasing=True)[:num_core_barcodes]
        logger.info(f'Using the top {len(core_barcodes)} barcodes by count as core barcodes')

    metric = "Levenshtein" if find_indels else "Hamming"
    logger.info(f'Collapsing barcodes with {metric} distance <= {edit_distance} using {num_threads} threads...')
    mapper = MapBarcodesByEditDistance(verbose=verbose, num_threads=num_threads,
                                       report_progress_interval=report_progress_interval)
    mapping = mapper.collapse_barcodes(barcodes, find_indels, edit_distance, core_barcodes=core_barcodes)

    num_merged = sum(len(merged) for merged in mapping.values())
    logger.info(f'Retained {len(mapping)} core barcodes; merged {num_merged} barcodes into them')

    member_df = build_member_table(mapping, barcodes, find_indels, compute_distance)
    member_df.to_csv(output_file, sep=separator, index=False)
    logger.info(f'Barcode collapse table saved to {output_file}')

    if cluster_output:
        cluster_df = build_cluster_table(mapping, barcodes)
        cluster_df.to_csv(cluster_output, sep=separator, index=False)
        logger.info(f'Cluster summary saved to {cluster_output}')

    return mapping


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Collapse barcodes onto more frequent barcodes within an edit distance.")
    # Input and Output Files
    parser.add_argument("--input_file", required=True, help="Path to the table of barcodes and their counts.")
    parser.add_argument("--output_file", required=True, help="Path to save the barcode to core barcode table.")
    parser.add_argument("--cluster_output", default=None, help="Path to save the per-cluster summary. If not set, it is not generated.")
    parser.add_argument("--barcode_column", default="barcode", help="Name of the barcode column. Default: 'barcode'.")
    parser.add_argument("--count_column", default="count", help="Name of the count column. Default: 'count'.")
    parser.add_argument("--separator", default="\t", help="Separator of input and output tables. Default: '\\t'.")
    # Core Barcodes
    parser.add_argument("--core_barcodes_file", default=None, help="File with one core barcode per line. Only core barcodes absorb others.")
    parser.add_argument("--num_core_barcodes", type=int, default=None, help="Use the N most frequent barcodes as core barcodes. Ignored if --core_barcodes_file is set.")
    parser.add_argument("--min_count", type=int, default=None, help="Drop barcodes observed fewer than this many times before collapsing.")
    # Collapse Parameters
    parser.add_argument("--edit_distance", type=int, default=1, help="Maximum edit distance for collapsing barcodes. Default: 1.")
    parser.add_argument("--find_indels", action="store_true", help="If set, use Levenshtein distance (insertions and deletions) instead of Hamming distance.")
    parser.add_argument("--num_threads", type=int, default=1, help="Number of threads for the distance search. Default: 1.")
    parser.add_argument("--report_progress_interval", type=int, default=100000, help="Log progress every N core barcodes. 0 disables. Default: 100000.")
    parser.add_argument("--compute_distance", action="store_true", help="If set, include the distance between each barcode and its core barcode.")
    parser.add_argument("--verbose", action="store_true", help="If set, log a summary of the collapse.")
    # Logging Configuration
    parser.add_argument("--log_folder", default=None, help="Folder to save the log file.")
    parser.add_argument("--log_config", default=None, help="Path to the logging configuration file.")
    args = parser.parse_args()

    script_name = "collapse_barcodes_by_edit_distance"  # no file extension .py
    setup_logging(script_name, args.log_config, args.log_folder)

    start_time = datetime.now()
    logger.info(f"EXECUTING {script_name}.py")
    logger.info(f"Arguments: {args}")
    main(
        input_file=args.input_file,
        output_file=args.output_file,
        barcode_column=args.barcode_column,
        count_column=args.count_column,
        edit_distance=args.edit_distance,
        find_indels=args.find_indels,
        num_threads=args.num_threads,
        min_count=args.min_count,
        core_barcodes_file=args.core_barcodes_file,
        num_core_barcodes=args.num_core_barcodes,
        cluster_output=args.cluster_output,
        compute_distance=args.compute_distance,
        separator=args.separator,
        report_progress_interval=args.report_progress_interval,
        verbose=args.verbose,
    )
    end_time = datetime.now()
    logger.info(f"COMPLETED {script_name}.py in {end_time - start_time}")
