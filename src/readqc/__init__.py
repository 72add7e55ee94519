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

from .accumulator import A, C, G, N, T
from .accumulator import NUMBER_OF_NUCS, NUMBER_OF_QUALITY_VALUES, PHRED_MAX
from .accumulator import Read, SequenceAccumulator, Snapshot
from .config import QCConfig
from .contaminants import ContaminantMatcher
from .exceptions import (
    AccumulatorStateError, ConfigurationError, MalformedReferenceError,
    ModuleStateError, ReadQCError,
)
from .report_modules import Grade, QCModule, create_modules
from ._version import __version__


__all__ = [
    "A", "C", "G", "N", "T",
    "AccumulatorStateError",
    "ConfigurationError",
    "ContaminantMatcher",
    "Grade",
    "MalformedReferenceError",
    "ModuleStateError",
    "QCConfig",
    "QCModule",
    "Read",
    "ReadQCError",
    "SequenceAccumulator",
    "Snapshot",
    "create_modules",
    "NUMBER_OF_NUCS",
    "NUMBER_OF_QUALITY_VALUES",
    "PHRED_MAX",
    "__version__"
]
