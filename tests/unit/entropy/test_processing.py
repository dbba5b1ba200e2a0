from concurrent.futures import ThreadPoolExecutor

import pytest

from modentropy.entropy.calculation import MethylationEntropy, ZeroCoverage
from modentropy.entropy.processing import chunk_indices, fetch_reads_for_set, process_window_set
from modentropy.entropy.regions import RegionEntropy
from modentropy.entropy.scanner import SlidingWindows
from modentropy.informatics.bam_functions import AlignmentFetchError
from modentropy.informatics.fasta_functions import ReferenceSequences
from modentropy.informatics.modcall import ThresholdModCaller
from modentropy.informatics.motifs import Motif


def _cpg_windows(sequence="ACGCGCG"):
    reference = ReferenceSequences.from_mapping({"chr1": sequence})
    scanner = SlidingWindows(reference, [Motif("CG", 0)], num_positions=2, window_size=10)
    (genome_windows,) = scanner.next_batch()
    return genome_windows


def test_chunk_indices_are_disjoint_and_complete():
    chunks = chunk_indices(10, 3)
    assert [list(c) for c in chunks] == [[0, 1, 2, 3], [4, 5, 6], [7, 8, 9]]
    assert chunk_indices(2, 8) == [range(0, 1), range(1, 2)]
    assert chunk_indices(0, 4) == []


def test_identical_reads_give_zero_entropy(make_read, canonical_calls):
    genome_windows = _cpg_windows()
    reads = [make_read(canonical_calls("C", [1, 3]), 0, 4, "+", f"r{i}") for i in range(3)]
    requests = []

    def fetcher(bam_path, chrom, start, end, caller, io_threads):
        requests.append((bam_path, chrom, start, end, io_threads))
        return reads

    with ThreadPoolExecutor(max_workers=2) as executor:
        results = process_window_set(
            genome_windows,
            ["a.bam"],
            ThresholdModCaller.pass_all(),
            executor,
            min_coverage=3,
            max_filtered_positions=0,
            io_threads=2,
            fetcher=fetcher,
        )

    assert requests == [("a.bam", "chr1", 1, 6, 2)]
    successes = [r.pos_me_entropy for r in results if isinstance(r.pos_me_entropy, MethylationEntropy)]
    assert successes == [MethylationEntropy(0.0, 3, (1, 4))]
    assert isinstance(results[1].neg_me_entropy, ZeroCoverage)
    assert len(results) == len(genome_windows)


def test_parallel_update_matches_serial(make_read, methylated, canonical_calls):
    reads = []
    for i in range(12):
        calls = canonical_calls("C", [1, 3, 5])
        calls[("C", 1 + 2 * (i % 3))] = methylated
        reads.append(make_read(calls, 0, 7, "+"))
        reads.append(make_read(canonical_calls("C", [2, 4, 6]), 0, 7, "-"))

    def fetcher(*args):
        return reads

    outcomes = []
    for workers, n_chunks in ((1, 1), (4, 4)):
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes.append(
                process_window_set(
                    _cpg_windows(),
                    ["a.bam"],
                    ThresholdModCaller.pass_all(),
                    executor,
                    min_coverage=1,
                    max_filtered_positions=0,
                    n_chunks=n_chunks,
                    fetcher=fetcher,
                )
            )
    assert outcomes[0] == outcomes[1]


def test_region_sets_are_aggregated(tmp_path, make_read, canonical_calls):
    reference = ReferenceSequences.from_mapping({"chr1": "TTTTACGCGCG"})
    bed = tmp_path / "regions.bed"
    bed.write_text("chr1\t4\t11\tr1\n")
    scanner = SlidingWindows.from_regions(bed, reference, [Motif("CG", 0)], num_positions=2, window_size=10)
    (genome_windows,) = scanner.next_batch()
    reads = [make_read(canonical_calls("C", [5, 7, 9]), 0, 11, "+") for _ in range(2)]

    with ThreadPoolExecutor(max_workers=2) as executor:
        region = process_window_set(
            genome_windows,
            ["a.bam"],
            ThresholdModCaller.pass_all(),
            executor,
            min_coverage=2,
            max_filtered_positions=0,
            fetcher=lambda *args: reads,
        )

    assert isinstance(region, RegionEntropy)
    assert region.interval == (5, 10)
    assert region.pos_entropy_stats.successful_window_count == 2
    assert region.pos_entropy_stats.mean_entropy == 0.0
    assert region.neg_entropy_stats == ZeroCoverage(0, 5, 10)


def test_failed_bams_are_skipped_until_all_fail(make_read, canonical_calls):
    genome_windows = _cpg_windows()
    read = make_read(canonical_calls("C", [1, 3]), 0, 4)

    def flaky(bam_path, *args):
        if bam_path == "bad.bam":
            raise OSError("truncated file")
        return [read]

    with ThreadPoolExecutor(max_workers=2) as executor:
        reads = fetch_reads_for_set(
            genome_windows, ["good.bam", "bad.bam"], ThresholdModCaller.pass_all(), executor, fetcher=flaky
        )
        assert reads == [read]
        with pytest.raises(AlignmentFetchError):
            fetch_reads_for_set(
                genome_windows, ["bad.bam"], ThresholdModCaller.pass_all(), executor, fetcher=flaky
            )
