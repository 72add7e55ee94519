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
import typing
from typing import Iterable, List

NO_HIT = "No Hit"


class Contaminant(typing.NamedTuple):
    name: str
    sequence: str


class ContaminantMatcher:
    """
    Finds the most likely source of an overrepresented sequence in a list of
    known contaminants.

    A contaminant that is contained in a longer read is a candidate and the
    longest such candidate wins. A read that is contained in a contaminant of
    at least the same length is the best possible match, so the first such
    contaminant in list order is returned immediately.
    """
    contaminants: List[Contaminant]

    def __init__(self, contaminants: Iterable[Contaminant]):
        self.contaminants = list(contaminants)

    def __len__(self) -> int:
        return len(self.contaminants)

    def best_match(self, sequence: str) -> str:
        if not sequence:
            return NO_HIT
        best_length = 0
        best_name = NO_HIT
        sequence_length = len(sequence)
        for name, contaminant in self.contaminants:
            contaminant_length = len(contaminant)
            if sequence_length > contaminant_length:
                if contaminant_length > best_length and contaminant in sequence:
                    best_length = contaminant_length
                    best_name = name
            elif sequence in contaminant:
                return name
        return best_name
