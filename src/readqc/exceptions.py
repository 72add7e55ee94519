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
"""Exceptions raised by readqc."""


class ReadQCError(Exception):
    """Base exception for all readqc errors."""


class ConfigurationError(ReadQCError):
    """Raised when a limits, adapter or contaminant file is invalid."""


class MalformedReferenceError(ConfigurationError):
    """Raised when a reference sequence contains characters other than ACGT."""


class ModuleStateError(ReadQCError):
    """Raised when a module is queried before it has been summarized."""


class AccumulatorStateError(ReadQCError):
    """Raised when reads are added to an accumulator after finalization."""
