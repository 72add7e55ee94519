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
"""
Loading of the limits, adapter and contaminant reference files.

All three files share a simple line based format. Lines starting with ``#``
and blank lines are ignored. Every problem with these files is reported as a
:class:`~readqc.exceptions.ConfigurationError` before any read is processed.
"""

import dataclasses
import logging
import os
import typing
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from .accumulator import DEFAULT_KMER_SIZE, NUCLEOTIDE_BITS, NUCLEOTIDE_TO_INDEX
from .contaminants import Contaminant, ContaminantMatcher
from .exceptions import ConfigurationError, MalformedReferenceError

logger = logging.getLogger(__name__)

CONFIGURATION_DIR = os.path.join(os.path.dirname(__file__), "configuration")
DEFAULT_LIMITS_FILE = os.path.join(CONFIGURATION_DIR, "limits.txt")
DEFAULT_ADAPTER_FILE = os.path.join(CONFIGURATION_DIR, "adapter_list.txt")
DEFAULT_CONTAMINANT_FILE = os.path.join(CONFIGURATION_DIR,
                                        "contaminant_list.txt")

LIMIT_NAMES = (
    "duplication",
    "kmer",
    "n_content",
    "overrepresented",
    "quality_base",
    "quality_base_lower",
    "quality_base_median",
    "sequence",
    "gc_sequence",
    "quality_sequence",
    "tile",
    "sequence_length",
    "adapter",
)
LIMIT_INSTRUCTIONS = ("warn", "error", "ignore")


class Limits:
    """
    Warn, error and ignore thresholds for every metric in ``LIMIT_NAMES``.

    ``ignore`` defaults to 0 when it is not given. ``warn`` and ``error`` have
    no default: asking for one that was not configured is an error, because
    a module cannot be graded without it.
    """
    source: str

    def __init__(self, limits: Mapping[str, Mapping[str, float]],
                 source: str = "<limits>"):
        self.source = source
        self._limits: Dict[str, Dict[str, float]] = {}
        for metric, instructions in limits.items():
            if metric not in LIMIT_NAMES:
                raise ConfigurationError(
                    f"Unknown limit option '{metric}' in {source}.")
            for instruction, value in instructions.items():
                if instruction not in LIMIT_INSTRUCTIONS:
                    raise ConfigurationError(
                        f"Unknown instruction for limit '{metric}': "
                        f"'{instruction}' in {source}.")
                self._limits.setdefault(metric, {})[instruction] = value
        for metric in LIMIT_NAMES:
            if metric not in self._limits:
                raise ConfigurationError(
                    f"Instruction for limit '{metric}' not found in {source}.")

    def threshold(self, metric: str, instruction: str) -> float:
        try:
            return self._limits[metric][instruction]
        except KeyError:
            raise ConfigurationError(
                f"No '{instruction}' value for limit '{metric}' in "
                f"{self.source}.") from None

    def ignored(self, metric: str) -> bool:
        if metric not in self._limits:
            raise ConfigurationError(
                f"Unknown limit option '{metric}' in {self.source}.")
        return self._limits[metric].get("ignore", 0.0) != 0.0

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {metric: dict(instructions)
                for metric, instructions in self._limits.items()}


def reference_lines(path: str) -> Iterator[Tuple[int, List[str]]]:
    """Yield the line number and whitespace separated tokens of each line."""
    with open(path, "rt") as reference_file:
        for line_number, line in enumerate(reference_file, start=1):
            line = line.strip()
            if not line:
                continue  # ignore empty lines
            if line.startswith("#"):
                continue  # Use # as a comment character
            yield line_number, line.split()


def limits_from_file(path: str) -> Limits:
    limits: Dict[str, Dict[str, float]] = {}
    for line_number, tokens in reference_lines(path):
        if len(tokens) < 3:
            raise ConfigurationError(
                f"Malformed limit on line {line_number} of {path}: expected "
                f"'metric instruction value', got '{' '.join(tokens)}'.")
        metric, instruction, value = tokens[:3]
        if metric not in LIMIT_NAMES:
            raise ConfigurationError(
                f"Unknown limit option '{metric}' in {path}.")
        if instruction not in LIMIT_INSTRUCTIONS:
            raise ConfigurationError(
                f"Unknown instruction for limit '{metric}': "
                f"'{instruction}' in {path}.")
        try:
            limits.setdefault(metric, {})[instruction] = float(value)
        except ValueError:
            raise ConfigurationError(
                f"Limit '{metric} {instruction}' on line {line_number} of "
                f"{path} is not a number: '{value}'.") from None
    return Limits(limits, source=path)


def default_limits() -> Limits:
    return limits_from_file(DEFAULT_LIMITS_FILE)


class Adapter(typing.NamedTuple):
    name: str
    sequence: str
    kmer: int


def encode_kmer(sequence: str) -> int:
    kmer = 0
    for base in sequence:
        try:
            kmer = (kmer << NUCLEOTIDE_BITS) | NUCLEOTIDE_TO_INDEX[base]
        except KeyError:
            raise MalformedReferenceError(
                f"Bad adapter (non-ACGT characters): {sequence}") from None
    return kmer


def adapters_from_file(path: str, kmer_size: int = DEFAULT_KMER_SIZE
                       ) -> List[Adapter]:
    adapters = []
    for line_number, tokens in reference_lines(path):
        if len(tokens) < 2:
            continue  # A name without a sequence carries no information
        name = " ".join(tokens[:-1])
        sequence = tokens[-1][:kmer_size]
        if len(sequence) < kmer_size:
            raise MalformedReferenceError(
                f"Adapter '{name}' on line {line_number} of {path} is "
                f"shorter than the k-mer size of {kmer_size}.")
        adapters.append(Adapter(name, sequence, encode_kmer(sequence)))
    return adapters


def contaminants_from_file(path: str) -> List[Contaminant]:
    contaminants = []
    for _, tokens in reference_lines(path):
        if len(tokens) < 2:
            continue
        contaminants.append(
            Contaminant(" ".join(tokens[:-1]), tokens[-1].upper()))
    return contaminants


@dataclasses.dataclass
class QCConfig:
    """Everything the report modules need besides the accumulated data."""
    filename: str = ""
    kmer_size: int = DEFAULT_KMER_SIZE
    nogroup: bool = False
    limits: Limits = dataclasses.field(default_factory=default_limits)
    adapters: List[Adapter] = dataclasses.field(default_factory=list)
    contaminants: ContaminantMatcher = dataclasses.field(
        default_factory=lambda: ContaminantMatcher([]))

    @classmethod
    def from_files(cls,
                   filename: str = "",
                   limits_file: Optional[str] = None,
                   adapter_file: Optional[str] = None,
                   contaminant_file: Optional[str] = None,
                   kmer_size: int = DEFAULT_KMER_SIZE,
                   nogroup: bool = False) -> "QCConfig":
        """
        Read all reference files. The adapter and contaminant lists are only
        read when the analysis that uses them is enabled in the limits.
        """
        limits = limits_from_file(limits_file or DEFAULT_LIMITS_FILE)
        adapters: List[Adapter] = []
        if not limits.ignored("adapter"):
            adapter_file = adapter_file or DEFAULT_ADAPTER_FILE
            adapters = adapters_from_file(adapter_file, kmer_size)
            logger.debug("Loaded %d adapters from %s",
                         len(adapters), adapter_file)
        contaminants: List[Contaminant] = []
        if not limits.ignored("overrepresented"):
            contaminant_file = contaminant_file or DEFAULT_CONTAMINANT_FILE
            contaminants = contaminants_from_file(contaminant_file)
            logger.debug("Loaded %d contaminants from %s",
                         len(contaminants), contaminant_file)
        return cls(
            filename=filename,
            kmer_size=kmer_size,
            nogroup=nogroup,
            limits=limits,
            adapters=adapters,
            contaminants=ContaminantMatcher(contaminants),
        )
