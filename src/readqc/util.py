# Copyright (C) 2023 Leiden University Medical Center
# This file is part of readqc
#
# readqc is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# readqc is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with readqc.  If not, see <https://www.gnu.org/licenses/

import io
import os
from typing import BinaryIO, Callable, Iterator, List, Optional

import dnaio

import tqdm

import xopen

from .accumulator import Read

PHRED_OFFSET = 33

COMPRESSION_EXTENSIONS = (".gz", ".bz2", ".xz", ".zst")
SEQUENCE_EXTENSIONS = (".fastq", ".fq", ".fasta", ".fa")


class ProgressUpdater:
    """
    A simple wrapper to update the progressbar based on the number of bytes
    in the parsed records.

    Because tqdm requires some minor execution time, only call tqdm.update()
    every 10MiB of processed records to prevent too much time spent on
    calling the tell() functions and calling tqdm.update().
    """
    _get_position: Callable[[], int]
    previous_file_pos: int
    current_processed_bytes = 0
    progress_update_every: int
    next_update_at: int
    tqdm: tqdm.tqdm

    def __init__(self, filereader: io.BufferedReader, disable: bool = False):
        self.previous_file_pos = 0
        self.current_processed_bytes = 0
        self.progress_update_every = 1024 * 1024 * 10
        self.next_update_at = self.progress_update_every
        filename = filereader.name
        total: Optional[int] = os.stat(filename).st_size
        if filereader.seekable():
            self._get_position = filereader.tell
        else:
            self._get_position = lambda: self.current_processed_bytes
            total = None
        self.tqdm = tqdm.tqdm(
            desc=f"Processing {os.path.basename(filename)}",
            unit="iB", unit_scale=True, unit_divisor=1024,
            total=total,
            smoothing=0.05,  # Much less erratic than default 0.3
            disable=disable,
        )

    def __enter__(self):
        return self

    def close(self):
        # Do one last update to ensure the entire progress bar is full
        self.tqdm.update(self._get_position() - self.previous_file_pos)
        self.tqdm.close()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def update(self, processed_bytes: int):
        self.current_processed_bytes += processed_bytes
        if self.current_processed_bytes > self.next_update_at:
            self.next_update_at += self.progress_update_every
            current_position = self._get_position()
            self.tqdm.update(current_position - self.previous_file_pos)
            self.previous_file_pos = current_position


def tile_from_header(header: str) -> Optional[int]:
    """
    Extract the tile number from an Illumina read name.

    Current Illumina names have seven colon separated fields
    ``<instrument>:<run>:<flowcell>:<lane>:<tile>:<x>:<y>``, older ones have
    five: ``<instrument>:<lane>:<tile>:<x>:<y>``. Anything else has no tile.
    """
    name = header.split(maxsplit=1)[0] if header else ""
    fields = name.split(":")
    if len(fields) == 7:
        tile = fields[4]
    elif len(fields) == 5:
        tile = fields[2]
    else:
        return None
    try:
        return int(tile)
    except ValueError:
        return None


def phred_scores(qualities: Optional[str]) -> List[int]:
    if qualities is None:
        return []
    return [quality - PHRED_OFFSET for quality in qualities.encode("ascii")]


def guess_format(filepath: str) -> str:
    name = os.path.basename(filepath)
    for extension in COMPRESSION_EXTENSIONS:
        if name.endswith(extension):
            name = name[:-len(extension)]
            break
    if name.endswith((".fasta", ".fa")):
        return "FASTA"
    return "FASTQ"


def sample_name(filepath: str) -> str:
    """Basename of a sequence file without compression and format suffixes."""
    name = os.path.basename(filepath)
    for extensions in (COMPRESSION_EXTENSIONS, SEQUENCE_EXTENSIONS):
        for extension in extensions:
            if name.endswith(extension) and len(name) > len(extension):
                name = name[:-len(extension)]
                break
    return name


class NGSFile:
    filepath: str
    raw: io.BufferedReader
    file: BinaryIO
    progress: ProgressUpdater
    reader: dnaio.SingleEndReader
    format: str

    def __init__(self, filepath: str, threads: int = 0,
                 progress: bool = True):
        self.filepath = filepath
        self.raw = open(filepath, "rb")  # type: ignore
        self.progress = ProgressUpdater(self.raw, disable=not progress)
        self.file = xopen.xopen(self.raw, "rb", threads=threads)
        self.format = guess_format(filepath)
        self.reader = dnaio.open(self.file, mode="r",
                                 fileformat=self.format.lower())

    def __iter__(self) -> Iterator[Read]:
        for record in self.reader:
            self.progress.update(
                len(record.name) + 2 * len(record.sequence) + 6)
            yield Read(record.sequence,
                       phred_scores(record.qualities),
                       tile_from_header(record.name))

    def close(self):
        self.progress.close()
        self.reader.close()
        self.file.close()
        self.raw.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
