import math

import pytest

from readqc.accumulator import NUMBER_OF_GC_BINS, Read, SequenceAccumulator
from readqc.config import QCConfig
from readqc.report_modules import (Grade, PerSequenceGCContent,
                                   gc_deviation_from_normal)


def empty_histogram():
    return [0] * NUMBER_OF_GC_BINS


def test_no_reads():
    deviation, theoretical = gc_deviation_from_normal(empty_histogram())
    assert deviation == 0.0
    assert theoretical == [0.0] * NUMBER_OF_GC_BINS


def test_single_read():
    histogram = empty_histogram()
    histogram[40] = 1
    deviation, theoretical = gc_deviation_from_normal(histogram)
    assert deviation == 0.0
    assert sum(theoretical) == 0.0


def test_all_reads_in_one_bin():
    histogram = empty_histogram()
    histogram[50] = 10
    deviation, theoretical = gc_deviation_from_normal(histogram)
    assert deviation == 0.0
    assert theoretical[50] == 10.0
    assert sum(theoretical) == 10.0


def test_normal_distribution():
    histogram = [round(1000 * math.exp(-((i - 50) ** 2) / 50))
                 for i in range(NUMBER_OF_GC_BINS)]
    deviation, theoretical = gc_deviation_from_normal(histogram)
    assert deviation < 5.0
    assert max(range(NUMBER_OF_GC_BINS), key=theoretical.__getitem__) == 50
    assert sum(theoretical) == pytest.approx(sum(histogram))


def test_bimodal_distribution():
    histogram = empty_histogram()
    histogram[20] = 500
    histogram[80] = 500
    deviation, theoretical = gc_deviation_from_normal(histogram)
    assert deviation > 30.0
    # The first mode is used as the centre.
    assert max(range(NUMBER_OF_GC_BINS), key=theoretical.__getitem__) == 20


def test_mode_run_reaching_the_edge_uses_raw_mode():
    histogram = empty_histogram()
    histogram[0] = 10
    histogram[1] = 10
    deviation, theoretical = gc_deviation_from_normal(histogram)
    assert theoretical[0] > theoretical[1] > theoretical[2]


def test_mode_averaged_over_neighbours():
    histogram = empty_histogram()
    histogram[29] = 5
    histogram[30] = 100
    histogram[31] = 95
    histogram[32] = 5
    deviation, theoretical = gc_deviation_from_normal(histogram)
    # The centre is 30.5 so both neighbours are equally likely.
    assert theoretical[30] == pytest.approx(theoretical[31])


@pytest.mark.parametrize(["sequences", "at_50", "grade"], [
    (["GGCC", "AATT", "GATC", "GACT", "ACGT", "TGCA"], 4, Grade.FAIL),
    (["GATC"] * 6, 6, Grade.PASS),
])
def test_gc_module(sequences, at_50, grade):
    accumulator = SequenceAccumulator()
    accumulator.observe_many(Read(sequence, [30] * len(sequence))
                             for sequence in sequences)
    module = PerSequenceGCContent(QCConfig())
    module.summarize(accumulator.finalize())
    assert module.grade == grade
    lines = module.text().splitlines()
    assert lines[1] == "#GC Content\tCount"
    assert len(lines) == 2 + NUMBER_OF_GC_BINS + 1
    assert lines[2 + 50] == f"50\t{at_50}"
