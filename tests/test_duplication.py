import pytest

from readqc.accumulator import Read, SequenceAccumulator
from readqc.config import QCConfig
from readqc.report_modules import (DUPLICATION_LEVEL_LABELS, Grade,
                                   SequenceDuplicationLevels, corrected_count,
                                   duplication_slot)


def duplication_module(sequences, duplication_limit=100_000):
    accumulator = SequenceAccumulator(duplication_limit=duplication_limit)
    accumulator.observe_many(Read(sequence, [30] * len(sequence))
                             for sequence in sequences)
    module = SequenceDuplicationLevels(QCConfig())
    module.summarize(accumulator.finalize())
    return module


def test_corrected_count_everything_seen():
    assert corrected_count(100, 100, 5, 7) == 7


def test_corrected_count_not_enough_reads_left():
    assert corrected_count(100, 150, 2, 60) == 60


def test_corrected_count_extrapolates():
    # The chance of missing a unique sequence in the first 10 of 1000 reads
    # is 990 / 1000.
    assert corrected_count(10, 1000, 1, 5) == pytest.approx(500)


def test_corrected_count_stops_when_change_is_negligible():
    assert corrected_count(1000, 2000, 100, 3) == 3


@pytest.mark.parametrize(["dup_level", "slot"], [
    (1, 0), (2, 1), (9, 8), (10, 9), (49, 9), (50, 10), (99, 10), (100, 11),
    (500, 12), (999, 12), (1000, 13), (5000, 14), (10_000, 15),
    (123_456, 15)
])
def test_duplication_slot(dup_level, slot):
    assert duplication_slot(dup_level) == slot
    assert len(DUPLICATION_LEVEL_LABELS) == 16


def test_all_unique():
    module = duplication_module(["AAAA", "CCCC", "GGGG", "TTTT"])
    assert module.total_deduplicated_pct == 100.0
    assert module.percentage_deduplicated[0] == 100.0
    assert module.percentage_total[0] == 100.0
    assert module.grade == Grade.PASS


def test_identical_reads():
    module = duplication_module(["GATTACA"] * 100)
    assert module.total_deduplicated_pct == 1.0
    assert module.percentage_total[11] == 100.0
    assert module.percentage_deduplicated[11] == 100.0
    assert module.grade == Grade.FAIL
    lines = module.text().splitlines()
    assert lines[1] == "#Total Deduplicated Percentage\t1"
    assert lines[2] == ("#Duplication Level\tPercentage of deduplicated"
                        "\tPercentage of total")
    assert lines[3] == "1\t0\t0"
    assert lines[14] == ">100\t100\t100"
    assert len(lines) == 2 + 16 + 2


def test_mixed_levels():
    # 2 unique sequences and one sequence seen twice.
    module = duplication_module(["AAAA", "CCCC", "GGGG", "GGGG"])
    assert module.total_deduplicated_pct == pytest.approx(75.0)
    assert module.percentage_deduplicated[0] == pytest.approx(200 / 3)
    assert module.percentage_deduplicated[1] == pytest.approx(100 / 3)
    assert module.percentage_total[0] == pytest.approx(50.0)
    assert module.percentage_total[1] == pytest.approx(50.0)
    assert module.grade == Grade.PASS


@pytest.mark.parametrize(["unique", "copies", "grade"], [
    (3, 1, Grade.PASS),  # 100%
    (2, 3, Grade.WARN),  # 60%
    (1, 3, Grade.FAIL),  # 50%
    (0, 4, Grade.FAIL),  # 25%
])
def test_grade_thresholds(unique, copies, grade):
    sequences = [base * 4 for base in "ACG"[:unique]] + ["TTTT"] * copies
    assert duplication_module(sequences).grade == grade


def test_counts_extrapolated_after_limit():
    sequences = ["AAAA", "CCCC"] + ["GGGG", "TTTT"] * 5
    module = duplication_module(sequences, duplication_limit=2)
    assert module.grade == Grade.PASS
    # Only AAAA and CCCC were admitted, each seen once in 2 of 12 reads.
    assert module.percentage_deduplicated[0] == pytest.approx(100.0)
    assert module.total_deduplicated_pct == pytest.approx(100.0)
