import gzip
from pathlib import Path

import pytest

from readqc.util import (NGSFile, guess_format, phred_scores, sample_name,
                         tile_from_header)

DATA = Path(__file__).parent / "data"


@pytest.mark.parametrize(["header", "tile"], (
    ("SIM:1:FCX:1:15:6329:1045 1:N:0:2", 15),
    ("SIM:1:FCX:1:2104:6329:1045", 2104),
    ("HWUSI-EAS100R:6:73:941:1973#0/1", 73),
    ("read1", None),
    ("SIM:1:FCX:1:abc:6329:1045", None),
    ("", None),
))
def test_tile_from_header(header, tile):
    assert tile_from_header(header) == tile


def test_phred_scores():
    assert phred_scores("I!5") == [40, 0, 20]
    assert phred_scores("") == []
    assert phred_scores(None) == []


@pytest.mark.parametrize(["path", "name"], (
    ("sample.fastq", "sample"),
    ("dir/sample.fastq.gz", "sample"),
    ("reads.fq.bz2", "reads"),
    ("reads.txt", "reads.txt"),
    (".fastq", ".fastq"),
))
def test_sample_name(path, name):
    assert sample_name(path) == name


@pytest.mark.parametrize(["path", "format"], (
    ("sample.fastq", "FASTQ"),
    ("sample.fq.gz", "FASTQ"),
    ("sample.fasta.gz", "FASTA"),
    ("sample.fa", "FASTA"),
    ("sample", "FASTQ"),
))
def test_guess_format(path, format):
    assert guess_format(path) == format


def test_ngs_file():
    with NGSFile(str(DATA / "simple.fastq"), progress=False) as reader:
        reads = list(reader)
    assert [read.sequence for read in reads] == ["GATTACA", "GATTACAT",
                                                  "ACGTNNN"]
    assert list(reads[0].qualities) == [40] * 7
    assert list(reads[2].qualities) == [0] * 7
    assert [read.tile for read in reads] == [15, 15, 16]


def test_ngs_file_gzip(tmp_path):
    compressed = tmp_path / "simple.fastq.gz"
    compressed.write_bytes(gzip.compress((DATA / "simple.fastq").read_bytes()))
    with NGSFile(str(compressed), progress=False) as reader:
        assert len(list(reader)) == 3


def test_ngs_file_fasta(tmp_path):
    fasta = tmp_path / "reads.fasta"
    fasta.write_text(">read1\nACGT\n>read2\nGG\n")
    with NGSFile(str(fasta), progress=False) as reader:
        reads = list(reader)
    assert reader.format == "FASTA"
    assert [read.sequence for read in reads] == ["ACGT", "GG"]
    assert list(reads[0].qualities) == []


def test_ngs_file_empty():
    with NGSFile(str(DATA / "empty.fastq"), progress=False) as reader:
        assert list(reader) == []
