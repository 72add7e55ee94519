import pytest

from readqc.accumulator import Read, SequenceAccumulator
from readqc.config import (DEFAULT_ADAPTER_FILE, QCConfig, adapters_from_file,
                           encode_kmer)
from readqc.exceptions import ConfigurationError
from readqc.report_modules import (AdapterContent, Grade, KMER_REPORT_LIMIT,
                                   KmerContent)

ILLUMINA_ADAPTER = "AGATCGGAAGAGCACACGTCTGAACTCCAGTCA"
SEQUENCE = "ACGTTGCAACCTTCGATGTCCTACGTTACCATGCATGCAGTCAGTTCCAG"


def snapshot_from_sequences(sequences, **kwargs):
    accumulator = SequenceAccumulator(**kwargs)
    accumulator.observe_many(Read(sequence, [30] * len(sequence))
                             for sequence in sequences)
    return accumulator.finalize()


def adapter_module(sequences, kmer_size=7, **kwargs):
    config = QCConfig(adapters=adapters_from_file(DEFAULT_ADAPTER_FILE,
                                                  kmer_size))
    module = AdapterContent(config)
    module.summarize(snapshot_from_sequences(sequences, kmer_size=kmer_size,
                                             **kwargs))
    return module


def kmer_module(sequences, **kwargs):
    module = KmerContent(QCConfig())
    module.summarize(snapshot_from_sequences(sequences, **kwargs))
    return module


def test_adapter_content_all_adapters():
    module = adapter_module([ILLUMINA_ADAPTER] * 100)
    universal = module.adapter_content[0]
    assert module.adapters[0].name == "Illumina Universal Adapter"
    assert universal[:6] == [0.0] * 6
    assert universal[6:] == [100.0] * (len(ILLUMINA_ADAPTER) - 6)
    for other in module.adapter_content[1:]:
        assert set(other) == {0.0}
    assert module.grade == Grade.FAIL
    lines = module.text().splitlines()
    assert lines[1] == "\t".join(
        ["#Position"] + [adapter.name for adapter in module.adapters])
    assert lines[2] == "1\t0\t0\t0\t0\t0"
    assert lines[8] == "7\t100\t0\t0\t0\t0"
    assert len(lines) == 2 + len(ILLUMINA_ADAPTER) + 1


def test_adapter_content_is_cumulative():
    sequences = ["TTTTTTTTTT" + ILLUMINA_ADAPTER[:7] + "TTT",
                 "TTTTT" + ILLUMINA_ADAPTER[:7] + "TTTTTTTT"]
    module = adapter_module(sequences)
    universal = module.adapter_content[0]
    assert universal[10] == 0.0
    assert universal[11] == 50.0
    assert universal[15] == 50.0
    assert universal[16] == 100.0
    assert module.grade == Grade.FAIL


@pytest.mark.parametrize(["with_adapter", "grade"], [
    (0, Grade.PASS),
    (6, Grade.WARN),
    (20, Grade.FAIL),
])
def test_adapter_content_grade(with_adapter, grade):
    sequences = (["A" * 10 + ILLUMINA_ADAPTER[:7] + "A" * 3] * with_adapter +
                 ["A" * 20] * (100 - with_adapter))
    module = adapter_module(sequences)
    assert module.grade == grade
    assert module.adapter_content[0][-1] == with_adapter


def test_adapter_content_stops_at_kmer_max_position():
    module = adapter_module([ILLUMINA_ADAPTER] * 10, kmer_max_position=20)
    assert module.num_positions == 20


def test_adapter_content_wrong_kmer_size():
    config = QCConfig(adapters=adapters_from_file(DEFAULT_ADAPTER_FILE, 7))
    module = AdapterContent(config)
    with pytest.raises(ConfigurationError):
        module.summarize(snapshot_from_sequences([ILLUMINA_ADAPTER],
                                                 kmer_size=5))


def test_kmer_content_identical_reads():
    module = kmer_module([SEQUENCE] * 100)
    distinct_kmers = len(SEQUENCE) - 7 + 1
    assert len(module.kmers_to_report) == distinct_kmers
    for report in module.kmers_to_report:
        assert report.count == 100
        assert report.pvalue == "0.0"
        assert report.obs_exp_max == pytest.approx(distinct_kmers)
    first = {report.sequence: report for report in module.kmers_to_report}[
        SEQUENCE[:7]]
    assert first.max_position == 7
    assert module.grade == Grade.FAIL
    lines = module.text().splitlines()
    assert lines[1] == ("#Sequence\tCount\tPValue\tObs/Exp Max"
                        "\tMax Obs/Exp Position")
    assert len(lines) == 2 + KMER_REPORT_LIMIT + 1


def test_kmer_content_sorted_by_ratio():
    sequences = ["C" * 20] * 10 + ["ACGTACGTAC"] * 2
    module = kmer_module(sequences)
    ratios = [report.obs_exp_max for report in module.kmers_to_report]
    assert ratios == sorted(ratios, reverse=True)


def test_kmer_content_no_enrichment():
    module = kmer_module(["AAAAAAAA", "CCCCCCCC"])
    assert module.kmers_to_report == []
    assert module.grade == Grade.PASS
    assert len(module.text().splitlines()) == 3


def test_kmer_content_reads_shorter_than_k():
    module = kmer_module(["ACGT"] * 10)
    assert module.kmers_to_report == []
    assert module.grade == Grade.PASS


def test_kmer_encoding_matches_adapter_encoding():
    adapters = adapters_from_file(DEFAULT_ADAPTER_FILE, 7)
    assert adapters[0].kmer == encode_kmer("AGATCGG")
