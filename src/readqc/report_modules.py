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

import collections
import enum
import html
import logging
import math
import os
import typing
from abc import ABC, abstractmethod
from typing import (Any, Dict, Iterable, Iterator, List, Optional, Sequence,
                    Tuple, Type)

import pygal  # type: ignore
import pygal.style  # type: ignore

from .accumulator import (A, C, G, NUMBER_OF_GC_BINS, NUMBER_OF_QUALITY_VALUES,
                          T, Snapshot, kmer_to_sequence)
from .config import Adapter, QCConfig
from .contaminants import ContaminantMatcher
from .exceptions import ConfigurationError, ModuleStateError

logger = logging.getLogger(__name__)

QUANTILE_FRACTIONS = (0.1, 0.25, 0.5, 0.75, 0.9)

DUPLICATION_LEVEL_LABELS = (
    "1", "2", "3", "4", "5", "6", "7", "8", "9",
    ">10", ">50", ">100", ">500", ">1k", ">5k", ">10k+")
OVERREPRESENTED_MIN_FRACTION = 0.001
KMER_MIN_OBS_EXP = 5.0
KMER_REPORT_LIMIT = 20
# No statistical test is performed for k-mers, the column is kept for
# compatibility with existing parsers of the text report.
KMER_PVALUE = "0.0"

FILE_TYPE = "Conventional base calls"
FILE_ENCODING = "Sanger / Illumina 1.9"

COLOR_GREEN = "#33cc33"
COLOR_YELLOW = "#FFD700"  # actually 'Gold' which is darker and more visible.
COLOR_RED = "#ff0000"
COLOR_BLUE = "#0000FF"
COLOR_BLACK = "#000000"

GRADE_COLORS = {"pass": COLOR_GREEN, "warn": COLOR_YELLOW, "fail": COLOR_RED}

ONE_SERIE_STYLE = pygal.style.DefaultStyle(colors=(COLOR_GREEN,))
MULTIPLE_SERIES_STYLE = pygal.style.DefaultStyle()

COMMON_GRAPH_OPTIONS = dict(
    truncate_label=-1,
    width=1500,
    explicit_size=True,
    disable_xml_declaration=True,
    js=[],  # Script is globally downloaded once
)


class Grade(enum.IntEnum):
    PASS = 0
    WARN = 1
    FAIL = 2

    def __str__(self):
        return self.name.lower()


class BaseGroup(typing.NamedTuple):
    start: int
    end: int

    def label(self) -> str:
        if self.start == self.end:
            return str(self.start + 1)
        return f"{self.start + 1}-{self.end + 1}"


class QualityQuantiles(typing.NamedTuple):
    mean: float
    lower_decile: int
    lower_quartile: int
    median: int
    upper_quartile: int
    upper_decile: int


def base_groups(num_bases: int, group: bool = True) -> List[BaseGroup]:
    """
    Partition positions ``0..num_bases - 1`` into groups.

    Without grouping every position is its own group. With grouping the
    width of a group grows along the read, but only for reads long enough to
    benefit from it. The last group is clamped to the final position.
    """
    if not group:
        return [BaseGroup(i, i) for i in range(num_bases)]
    groups = []
    start = 0
    interval = 1
    while start < num_bases:
        end = min(start + interval - 1, num_bases - 1)
        groups.append(BaseGroup(start, end))
        start += interval
        if start == 9 and num_bases > 75:
            interval = 5
        if start == 49 and num_bases > 200:
            interval = 10
        if start == 99 and num_bases > 300:
            interval = 50
        if start == 499 and num_bases > 1000:
            interval = 100
        if start == 999 and num_bases > 2000:
            interval = 500
    return groups


def quality_quantiles(histogram: Sequence[int], total: int
                      ) -> QualityQuantiles:
    """
    Find the 10th, 25th, 50th, 75th and 90th percentile of a quality
    histogram in a single pass. A percentile is the first quality value at
    which the cumulative count reaches or exceeds its threshold.

    ``total`` is the number of bases the thresholds are based on. A total of
    zero yields zero for every value.
    """
    thresholds = [fraction * total for fraction in QUANTILE_FRACTIONS]
    cut_points = [0 for _ in thresholds]
    counts = 0
    weighted_sum = 0
    for quality, count in enumerate(histogram):
        for index, threshold in enumerate(thresholds):
            if counts < threshold <= counts + count:
                cut_points[index] = quality
        weighted_sum += quality * count
        counts += count
    mean = weighted_sum / total if total else 0.0
    return QualityQuantiles(mean, *cut_points)


def corrected_count(count_at_limit: int,
                    num_reads: int,
                    dup_level: int,
                    num_obs: int) -> float:
    """
    Extrapolate the number of distinct sequences seen ``dup_level`` times to
    the entire file.

    Only the first ``count_at_limit`` reads were able to add new sequences to
    the duplication map. A sequence with this duplication level that was
    missed in those reads is not counted, so ``num_obs`` is scaled up by the
    probability of having seen such a sequence at all.
    """
    if count_at_limit == num_reads:
        return num_obs
    # Not enough reads left to hide another sequence at this level.
    if num_reads - num_obs < count_at_limit:
        return num_obs
    p_not_seeing = 1.0
    # Below this probability the count would change by less than 0.01.
    limit_of_caring = 1.0 - (num_obs / (num_obs + 0.01))
    for i in range(count_at_limit):
        p_not_seeing *= ((num_reads - i) - dup_level) / (num_reads - i)
        if p_not_seeing < limit_of_caring:
            p_not_seeing = 0.0
            break
    return num_obs / (1 - p_not_seeing)


def duplication_slot(dup_level: int) -> int:
    if dup_level >= 10_000:
        return 15
    if dup_level >= 5000:
        return 14
    if dup_level >= 1000:
        return 13
    if dup_level >= 500:
        return 12
    if dup_level >= 100:
        return 11
    if dup_level >= 50:
        return 10
    if dup_level >= 10:
        return 9
    return dup_level - 1


def gc_deviation_from_normal(gc_histogram: Sequence[int]
                             ) -> Tuple[float, List[float]]:
    """
    Compare a GC histogram with a normal distribution that has the same
    centre and spread.

    The centre is the mode, averaged over the neighbouring bins that stay
    within 10% of the modal count. When that run reaches either end of the
    histogram the raw mode is used. Returns the sum of absolute differences
    as a percentage of the total, and the fitted distribution.
    """
    number_of_bins = len(gc_histogram)
    total = sum(gc_histogram)
    theoretical = [0.0 for _ in range(number_of_bins)]
    if total <= 1:
        return 0.0, theoretical
    first_mode = max(range(number_of_bins), key=gc_histogram.__getitem__)
    mode_count = gc_histogram[first_mode]
    cutoff = mode_count - mode_count / 10

    mode_sum = 0
    mode_duplicates = 0
    fell_off_top = True
    for i in range(first_mode, number_of_bins):
        if gc_histogram[i] > cutoff:
            mode_sum += i
            mode_duplicates += 1
        else:
            fell_off_top = False
            break
    fell_off_bottom = True
    for i in range(first_mode - 1, -1, -1):
        if gc_histogram[i] > cutoff:
            mode_sum += i
            mode_duplicates += 1
        else:
            fell_off_bottom = False
            break
    if fell_off_top or fell_off_bottom:
        mode = float(first_mode)
    else:
        mode = mode_sum / mode_duplicates

    variance = sum((i - mode) ** 2 * count
                   for i, count in enumerate(gc_histogram)) / (total - 1)
    stdev = math.sqrt(variance)
    if stdev == 0.0:
        # All reads share one GC percentage, the fit is a single spike.
        theoretical[round(mode)] = float(total)
    else:
        for i in range(number_of_bins):
            z = i - mode
            theoretical[i] = math.exp(-(z * z) / (2.0 * stdev * stdev))
        theoretical_sum = sum(theoretical)
        theoretical = [value * total / theoretical_sum
                       for value in theoretical]
    deviation = sum(abs(count - expected) for count, expected
                    in zip(gc_histogram, theoretical))
    return 100.0 * deviation / total, theoretical


def format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def tsv_row(*values: Any) -> str:
    return "\t".join(format_value(value) for value in values)


def percentage(part: float, total: float) -> float:
    return 100.0 * part / total if total else 0.0


def label_values(values: Sequence[Any], labels: Sequence[Any]):
    if len(values) != len(labels):
        raise ValueError("labels and values should have the same length")
    return [{"value": value, "label": label} for value, label
            in zip(values, labels)]


def label_settings(x_labels: Sequence[str]) -> Dict[str, Any]:
    # Labels are ranges such as 1-5, 101-142 etc. This clutters the x axis
    # labeling so only use the first number. The values will be labelled
    # separately.
    if not x_labels:
        return dict(x_labels=[])
    simple_x_labels = [label.split("-")[0] for label in x_labels]
    return dict(
        x_labels=simple_x_labels,
        x_labels_major_every=max(round(len(x_labels) / 30), 1),
        x_label_rotation=30 if len(simple_x_labels[-1]) > 4 else 0,
        show_minor_x_labels=False
    )


def html_table(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    header_cells = "".join(f"<th>{html.escape(header)}</th>"
                           for header in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{html.escape(format_value(value))}</td>"
                         for value in row) + "</tr>"
        for row in rows
    )
    return (f"<table><thead><tr>{header_cells}</tr></thead>"
            f"<tbody>{body}</tbody></table>")


def serie(x: Sequence[Any], y: Sequence[Any], name: str,
          type: str = "line", color: Optional[str] = None,
          **extra: Any) -> Dict[str, Any]:
    """Describe one plot series in a renderer independent way."""
    description: Dict[str, Any] = dict(x=list(x), y=list(y), type=type,
                                       name=name)
    if color is not None:
        description["color"] = color
    description.update(extra)
    return description


class QCModule(ABC):
    """
    One analysis of the accumulated read statistics.

    A module is constructed from the configuration, summarized exactly once
    from a :class:`~readqc.accumulator.Snapshot` and can then be rendered as
    text, HTML or a dictionary. Reading the grade or any rendering before
    :meth:`summarize` raises :class:`~readqc.exceptions.ModuleStateError`.

    Subclasses implement :meth:`summarize_module`, :meth:`make_grade`,
    :meth:`text_rows` and :meth:`make_html_data`. Grades only ever move
    towards FAIL through :meth:`_escalate`.
    """
    name: str = ""
    limit_key: Optional[str] = None
    summarized: bool

    def __init__(self, config: QCConfig):
        self.filename = config.filename
        self.summarized = False
        self._grade = Grade.PASS
        self._text: Optional[str] = None
        self._html_data: Optional[List[Dict[str, Any]]] = None

    @staticmethod
    def _thresholds(config: QCConfig, metric: str) -> Tuple[float, float]:
        return (config.limits.threshold(metric, "warn"),
                config.limits.threshold(metric, "error"))

    def _check_summarized(self):
        if not self.summarized:
            raise ModuleStateError(
                f"Attempted to use module '{self.name}' before summarizing.")

    def _escalate(self, grade: Grade):
        if grade > self._grade:
            self._grade = grade

    @property
    def grade(self) -> Grade:
        self._check_summarized()
        return self._grade

    def summarize(self, snapshot: Snapshot) -> None:
        self.summarized = False
        self._grade = Grade.PASS
        self.summarize_module(snapshot)
        # An empty input has nothing to grade.
        if snapshot.number_of_reads > 0:
            self.make_grade()
        self._text = "".join(
            line + "\n" for line in (
                f">>{self.name}\t{self._grade}",
                *self.text_rows(),
                ">>END_MODULE"))
        self._html_data = self.make_html_data()
        self.summarized = True

    @abstractmethod
    def summarize_module(self, snapshot: Snapshot) -> None:
        pass

    def make_grade(self) -> None:
        pass

    @abstractmethod
    def text_rows(self) -> Iterator[str]:
        pass

    @abstractmethod
    def make_html_data(self) -> List[Dict[str, Any]]:
        pass

    def text(self) -> str:
        self._check_summarized()
        return self._text  # type: ignore

    def short_summary(self, filename: Optional[str] = None) -> str:
        self._check_summarized()
        if filename is None:
            filename = self.filename
        return f"{str(self._grade).upper()}\t{self.name}\t{filename}"

    def html_data(self) -> List[Dict[str, Any]]:
        self._check_summarized()
        return self._html_data  # type: ignore

    @property
    def anchor(self) -> str:
        return self.name.lower().replace(" ", "_")

    def html_body(self) -> str:
        return f"<figure>{self.plot()}</figure>"

    def plot(self) -> str:
        return ""

    def to_html(self) -> str:
        self._check_summarized()
        grade = str(self._grade)
        return f"""
            <h2 id="{self.anchor}">{html.escape(self.name)}
                <span style="color:{GRADE_COLORS[grade]}">
                [{grade.upper()}]</span>
            </h2>
            {self.html_body()}
        """

    def to_dict(self) -> Dict[str, Any]:
        self._check_summarized()
        return {"name": self.name,
                "grade": str(self._grade),
                "data": self._html_data}


class BasicStatistics(QCModule):
    name = "Basic Statistics"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.filename_stripped = os.path.basename(config.filename)

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.total_sequences = snapshot.number_of_reads
        self.total_bases = snapshot.total_bases
        self.min_read_length = snapshot.min_read_length
        self.max_read_length = snapshot.max_read_length
        self.num_poor = 0
        if self.total_sequences:
            self.avg_read_length = self.total_bases / self.total_sequences
        else:
            self.avg_read_length = 0.0
        self.avg_gc = percentage(snapshot.total_gc, snapshot.total_bases)

    def sequence_length(self) -> str:
        if self.min_read_length == self.max_read_length:
            return str(self.max_read_length)
        return f"{self.min_read_length}-{self.max_read_length}"

    def measures(self) -> List[Tuple[str, Any]]:
        return [
            ("Filename", self.filename_stripped),
            ("File type", FILE_TYPE),
            ("Encoding", FILE_ENCODING),
            ("Total Sequences", self.total_sequences),
            ("Total Bases", self.total_bases),
            ("Sequences flagged as poor quality", self.num_poor),
            ("Sequence length", self.sequence_length()),
            ("%GC", int(self.avg_gc)),
        ]

    def text_rows(self) -> Iterator[str]:
        yield "#Measure\tValue"
        for measure, value in self.measures():
            yield tsv_row(measure, value)

    def make_html_data(self) -> List[Dict[str, Any]]:
        return [{"measure": measure, "value": value}
                for measure, value in self.measures()]

    def html_body(self) -> str:
        return html_table(("Measure", "Value"), self.measures())


class PerBaseSequenceQuality(QCModule):
    name = "Per base sequence quality"
    limit_key = "quality_base"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.lower_warn, self.lower_error = self._thresholds(
            config, "quality_base_lower")
        self.median_warn, self.median_error = self._thresholds(
            config, "quality_base_median")
        self.do_group = not config.nogroup

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.groups = base_groups(snapshot.max_read_length, self.do_group)
        self.quantiles: List[QualityQuantiles] = []
        for group in self.groups:
            histogram = [0 for _ in range(NUMBER_OF_QUALITY_VALUES)]
            bases_in_group = 0
            for position in range(group.start, group.end + 1):
                for quality, count in enumerate(
                        snapshot.quality_histogram(position)):
                    histogram[quality] += count
                bases_in_group += snapshot.reads_at_position(position)
            self.quantiles.append(
                quality_quantiles(histogram, bases_in_group))

    def group_grade(self, quantiles: QualityQuantiles) -> Grade:
        if (quantiles.lower_quartile < self.lower_error or
                quantiles.median < self.median_error):
            return Grade.FAIL
        if (quantiles.lower_quartile < self.lower_warn or
                quantiles.median < self.median_warn):
            return Grade.WARN
        return Grade.PASS

    def make_grade(self) -> None:
        for quantiles in self.quantiles:
            self._escalate(self.group_grade(quantiles))

    def text_rows(self) -> Iterator[str]:
        yield ("#Base\tMean\tMedian\tLower Quartile\tUpper Quartile"
               "\t10th Percentile\t90th Percentile")
        for group, q in zip(self.groups, self.quantiles):
            yield tsv_row(group.label(), float(q.mean),
                          f"{q.median:.1f}", f"{q.lower_quartile:.1f}",
                          f"{q.upper_quartile:.1f}", f"{q.lower_decile:.1f}",
                          f"{q.upper_decile:.1f}")

    def make_html_data(self) -> List[Dict[str, Any]]:
        data = []
        for group, q in zip(self.groups, self.quantiles):
            color = GRADE_COLORS[str(self.group_grade(q))]
            data.append(serie(
                x=[], name=f"{group.label()}bp", type="box", color=color,
                y=[q.lower_decile, q.lower_quartile, q.median,
                   q.upper_quartile, q.upper_decile]))
        return data

    def plot(self) -> str:
        x_labels = [group.label() for group in self.groups]
        plot = pygal.Line(
            title="Per base sequence quality",
            show_dots=False,
            x_title="position",
            y_title="phred score",
            style=pygal.style.DefaultStyle(
                colors=(COLOR_BLACK, COLOR_BLUE, COLOR_GREEN, COLOR_RED,
                        COLOR_BLUE, COLOR_BLACK)),
            **label_settings(x_labels),
            **COMMON_GRAPH_OPTIONS,
        )
        series = (
            ("90th percentile", "upper_decile", {"dasharray": "1,2"}),
            ("upper quartile", "upper_quartile", {"dasharray": "3,3"}),
            ("median", "median", None),
            ("mean", "mean", None),
            ("lower quartile", "lower_quartile", {"dasharray": "3,3"}),
            ("10th percentile", "lower_decile", {"dasharray": "1,2"}),
        )
        for name, field, stroke_style in series:
            values = [getattr(q, field) for q in self.quantiles]
            plot.add(name, label_values(values, x_labels),
                     stroke_style=stroke_style)
        return plot.render(is_unicode=True)


class PerTileSequenceQuality(QCModule):
    name = "Per tile sequence quality"
    limit_key = "tile"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        tile_quality = snapshot.tile_quality
        self.max_positions = max(
            (len(sums) for sums, _ in tile_quality.values()), default=0)
        position_sums = [0 for _ in range(self.max_positions)]
        position_counts = [0 for _ in range(self.max_positions)]
        for sums, counts in tile_quality.values():
            for i, (quality_sum, count) in enumerate(zip(sums, counts)):
                position_sums[i] += quality_sum
                position_counts[i] += count
        mean_in_base = [quality_sum / count if count else 0.0
                        for quality_sum, count
                        in zip(position_sums, position_counts)]
        self.tiles = sorted(tile_quality)
        self.deviations: Dict[int, List[float]] = {}
        for tile in self.tiles:
            sums, counts = tile_quality[tile]
            self.deviations[tile] = [
                quality_sum / count - mean_in_base[i] if count else 0.0
                for i, (quality_sum, count) in enumerate(zip(sums, counts))
            ]

    def make_grade(self) -> None:
        for deviations in self.deviations.values():
            for deviation in deviations:
                if deviation <= -self.error:
                    self._escalate(Grade.FAIL)
                elif deviation <= -self.warn:
                    self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield "#Tile\tBase\tMean"
        for tile in self.tiles:
            for i, deviation in enumerate(self.deviations[tile]):
                yield tsv_row(tile, i + 1, float(deviation))

    def make_html_data(self) -> List[Dict[str, Any]]:
        if not self.tiles:
            return []
        z = [self.deviations[tile] +
             [0.0] * (self.max_positions - len(self.deviations[tile]))
             for tile in self.tiles]
        return [serie(x=range(1, self.max_positions + 1), y=self.tiles,
                      name="Per tile quality deviation", type="heatmap",
                      z=z)]

    def html_body(self) -> str:
        if not self.tiles:
            return "No tile information was found in the read headers."
        return f"""
            This graph shows the deviation of each tile on each position from
            the mean quality of all tiles at that position in phred units.
            Only points beyond the warn threshold are shown.<br>
            <figure>{self.plot()}</figure>
        """

    def plot(self) -> str:
        x_labels = [str(i) for i in range(1, self.max_positions + 1)]
        style_class = pygal.style.Style
        style = style_class(
            colors=(COLOR_YELLOW, COLOR_RED) + style_class.colors
        )
        scatter_plot = pygal.Line(
            title="Deviation from the mean quality in phred units.",
            x_title="position",
            y_title="phred deviation",
            stroke=False,
            style=style,
            truncate_legend=-1,
            **label_settings(x_labels),
            **COMMON_GRAPH_OPTIONS,
        )

        def add_horizontal_line(name, position):
            scatter_plot.add(name, [position for _ in range(len(x_labels))],
                             show_dots=False, stroke=True)

        add_horizontal_line("warn", -self.warn)
        add_horizontal_line("error", -self.error)
        for tile in self.tiles:
            deviations = self.deviations[tile]
            if min(deviations, default=0.0) > -self.warn:
                continue
            cleaned = [{"value": deviation, "label": label}
                       if deviation <= -self.warn else None
                       for deviation, label in zip(deviations, x_labels)]
            scatter_plot.add(str(tile), cleaned)
        return scatter_plot.render(is_unicode=True)


class PerSequenceQualityScores(QCModule):
    name = "Per sequence quality scores"
    limit_key = "quality_sequence"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.quality_counts = list(snapshot.mean_quality_histogram)
        self.mode = max(range(len(self.quality_counts)),
                        key=self.quality_counts.__getitem__)

    def make_grade(self) -> None:
        if self.mode < self.error:
            self._escalate(Grade.FAIL)
        elif self.mode < self.warn:
            self._escalate(Grade.WARN)

    def observed(self) -> List[Tuple[int, int]]:
        return [(quality, count) for quality, count
                in enumerate(self.quality_counts) if count > 0]

    def text_rows(self) -> Iterator[str]:
        yield "#Quality\tCount"
        for quality, count in self.observed():
            yield tsv_row(quality, count)

    def make_html_data(self) -> List[Dict[str, Any]]:
        observed = self.observed()
        return [serie(x=[quality for quality, _ in observed],
                      y=[count for _, count in observed],
                      name="Sequence quality distribution", color="red")]

    def plot(self) -> str:
        maximum_score = 0
        for i, count in enumerate(self.quality_counts):
            if count > 0:
                maximum_score = i
        maximum_score = min(max(maximum_score + 2, 40),
                            len(self.quality_counts) - 1)
        plot = pygal.Bar(
            title="Per sequence quality scores",
            x_labels=range(maximum_score + 1),
            x_labels_major_every=3,
            show_minor_x_labels=False,
            style=ONE_SERIE_STYLE,
            x_title="Mean sequence quality (phred score)",
            y_title="number of reads",
            **COMMON_GRAPH_OPTIONS
        )
        plot.add("", self.quality_counts[:maximum_score + 1])
        return plot.render(is_unicode=True)


class PerBaseSequenceContent(QCModule):
    name = "Per base sequence content"
    limit_key = "sequence"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.num_bases = snapshot.max_read_length
        self.a_pct: List[float] = []
        self.c_pct: List[float] = []
        self.t_pct: List[float] = []
        self.g_pct: List[float] = []
        self.max_diff = 0.0
        for i in range(self.num_bases):
            a = snapshot.base_count(i, A)
            c = snapshot.base_count(i, C)
            t = snapshot.base_count(i, T)
            g = snapshot.base_count(i, G)
            total = a + c + t + g + snapshot.n_count(i)
            percentages = [percentage(count, total) for count in (a, c, t, g)]
            self.a_pct.append(percentages[0])
            self.c_pct.append(percentages[1])
            self.t_pct.append(percentages[2])
            self.g_pct.append(percentages[3])
            for first in range(4):
                for second in range(first + 1, 4):
                    self.max_diff = max(
                        self.max_diff,
                        abs(percentages[first] - percentages[second]))

    def make_grade(self) -> None:
        if self.max_diff > self.error:
            self._escalate(Grade.FAIL)
        elif self.max_diff > self.warn:
            self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield "#Base\tG\tA\tT\tC"
        for i in range(self.num_bases):
            yield tsv_row(i + 1, self.g_pct[i], self.a_pct[i],
                          self.t_pct[i], self.c_pct[i])

    def make_html_data(self) -> List[Dict[str, Any]]:
        positions = range(1, self.num_bases + 1)
        return [
            serie(positions, self.a_pct, name="A", color="green"),
            serie(positions, self.c_pct, name="C", color="blue"),
            serie(positions, self.t_pct, name="T", color="red"),
            serie(positions, self.g_pct, name="G", color="black"),
        ]

    def plot(self) -> str:
        x_labels = [str(i) for i in range(1, self.num_bases + 1)]
        plot = pygal.Line(
            title="Per base sequence content",
            dots_size=1,
            range=(0.0, 100.0),
            x_title="position",
            y_title="%",
            style=pygal.style.DefaultStyle(
                colors=(COLOR_GREEN, COLOR_BLUE, COLOR_RED, COLOR_BLACK)),
            **label_settings(x_labels),
            **COMMON_GRAPH_OPTIONS,
        )
        plot.add("A", label_values(self.a_pct, x_labels))
        plot.add("C", label_values(self.c_pct, x_labels))
        plot.add("T", label_values(self.t_pct, x_labels))
        plot.add("G", label_values(self.g_pct, x_labels))
        return plot.render(is_unicode=True)


class PerSequenceGCContent(QCModule):
    name = "Per sequence GC content"
    limit_key = "gc_sequence"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.gc_counts = list(snapshot.gc_histogram)
        self.gc_deviation, self.theoretical_gc_counts = \
            gc_deviation_from_normal(self.gc_counts)

    def make_grade(self) -> None:
        if self.gc_deviation >= self.error:
            self._escalate(Grade.FAIL)
        elif self.gc_deviation >= self.warn:
            self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield "#GC Content\tCount"
        for gc, count in enumerate(self.gc_counts):
            yield tsv_row(gc, count)

    def make_html_data(self) -> List[Dict[str, Any]]:
        gc_percentages = range(NUMBER_OF_GC_BINS)
        return [
            serie(gc_percentages, self.gc_counts, name="GC distribution",
                  color="red"),
            serie(gc_percentages, self.theoretical_gc_counts,
                  name="Theoretical distribution", color="blue"),
        ]

    def plot(self) -> str:
        plot = pygal.Line(
            title="Per sequence GC content",
            x_labels=[str(x) for x in range(NUMBER_OF_GC_BINS)],
            x_labels_major_every=5,
            show_minor_x_labels=False,
            show_dots=False,
            x_title="GC %",
            y_title="number of reads",
            style=pygal.style.DefaultStyle(colors=(COLOR_RED, COLOR_BLUE)),
            **COMMON_GRAPH_OPTIONS,
        )
        plot.add("GC distribution", self.gc_counts)
        plot.add("Theoretical distribution", self.theoretical_gc_counts)
        return plot.render(is_unicode=True)

    def html_body(self) -> str:
        return f"""
            Sum of deviations from the theoretical normal distribution:
            {self.gc_deviation:.2f}% of all reads.<br>
            <figure>{self.plot()}</figure>
        """


class PerBaseNContent(QCModule):
    name = "Per base N content"
    limit_key = "n_content"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.num_bases = snapshot.max_read_length
        self.n_pct = [
            percentage(snapshot.n_count(i), snapshot.reads_at_position(i))
            for i in range(self.num_bases)
        ]

    def make_grade(self) -> None:
        for n_pct in self.n_pct:
            if n_pct > self.error:
                self._escalate(Grade.FAIL)
            elif n_pct > self.warn:
                self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield "#Base\tN-Count"
        for i, n_pct in enumerate(self.n_pct):
            yield tsv_row(i + 1, n_pct)

    def make_html_data(self) -> List[Dict[str, Any]]:
        return [serie(range(1, self.num_bases + 1), self.n_pct,
                      name="Fraction of N reads per base", color="red")]

    def plot(self) -> str:
        x_labels = [str(i) for i in range(1, self.num_bases + 1)]
        plot = pygal.Bar(
            title="Per base N content",
            x_title="position",
            y_title="%",
            style=ONE_SERIE_STYLE,
            **label_settings(x_labels),
            **COMMON_GRAPH_OPTIONS,
        )
        plot.add("N", label_values(self.n_pct, x_labels))
        return plot.render(is_unicode=True)


class SequenceLengthDistribution(QCModule):
    name = "Sequence Length Distribution"
    limit_key = "sequence_length"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        warn, error = self._thresholds(config, self.limit_key)
        self.do_grade_warn = warn != 0
        self.do_grade_error = error != 0

    def summarize_module(self, snapshot: Snapshot) -> None:
        self.sequence_lengths = [
            (length, snapshot.read_length_count(length))
            for length in range(snapshot.max_read_length + 1)
            if snapshot.read_length_count(length) > 0
        ]
        self.has_empty_read = snapshot.read_length_count(0) > 0
        self.is_all_same_length = len(self.sequence_lengths) <= 1

    def make_grade(self) -> None:
        if self.do_grade_warn and not self.is_all_same_length:
            self._escalate(Grade.WARN)
        if self.do_grade_error and self.has_empty_read:
            self._escalate(Grade.FAIL)

    def text_rows(self) -> Iterator[str]:
        yield "#Length\tCount"
        for length, count in self.sequence_lengths:
            yield tsv_row(length, count)

    def make_html_data(self) -> List[Dict[str, Any]]:
        return [serie(
            x=[f"{length} bp" for length, _ in self.sequence_lengths],
            y=[count for _, count in self.sequence_lengths],
            text=[length for length, _ in self.sequence_lengths],
            name="Sequence length distribution", type="bar",
            color="rgba(55,128,191,1.0)")]

    def plot(self) -> str:
        x_labels = [str(length) for length, _ in self.sequence_lengths]
        plot = pygal.Bar(
            title="Sequence length distribution",
            x_title="sequence length",
            y_title="number of reads",
            style=ONE_SERIE_STYLE,
            **label_settings(x_labels),
            **COMMON_GRAPH_OPTIONS,
        )
        plot.add("Length", label_values(
            [count for _, count in self.sequence_lengths], x_labels))
        return plot.render(is_unicode=True)


class SequenceDuplicationLevels(QCModule):
    name = "Sequence Duplication Levels"
    limit_key = "duplication"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        # Key is the duplication level, value the number of distinct
        # sequences seen that many times.
        counts_by_level = collections.Counter(
            snapshot.sequence_counts.values())
        deduplicated = [0.0 for _ in DUPLICATION_LEVEL_LABELS]
        total = [0.0 for _ in DUPLICATION_LEVEL_LABELS]
        seq_dedup = 0.0
        seq_total = 0.0
        for dup_level, num_obs in sorted(counts_by_level.items()):
            corrected = corrected_count(
                snapshot.count_at_limit, snapshot.number_of_reads,
                dup_level, num_obs)
            slot = duplication_slot(dup_level)
            deduplicated[slot] += corrected
            total[slot] += corrected * dup_level
            seq_dedup += corrected
            seq_total += corrected * dup_level
        self.total_deduplicated_pct = percentage(seq_dedup, seq_total)
        self.percentage_deduplicated = [percentage(value, seq_dedup)
                                        for value in deduplicated]
        self.percentage_total = [percentage(value, seq_total)
                                 for value in total]

    def make_grade(self) -> None:
        if self.total_deduplicated_pct <= self.error:
            self._escalate(Grade.FAIL)
        elif self.total_deduplicated_pct <= self.warn:
            self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield tsv_row("#Total Deduplicated Percentage",
                      self.total_deduplicated_pct)
        yield "#Duplication Level\tPercentage of deduplicated\tPercentage of total"
        for label, deduplicated, total in zip(DUPLICATION_LEVEL_LABELS,
                                              self.percentage_deduplicated,
                                              self.percentage_total):
            yield tsv_row(label, deduplicated, total)

    def make_html_data(self) -> List[Dict[str, Any]]:
        levels = range(1, len(DUPLICATION_LEVEL_LABELS) + 1)
        return [
            serie(levels, self.percentage_total, name="total sequences",
                  color="blue", text=DUPLICATION_LEVEL_LABELS),
            serie(levels, self.percentage_deduplicated,
                  name="deduplicated sequences", color="red",
                  text=DUPLICATION_LEVEL_LABELS),
        ]

    def plot(self) -> str:
        plot = pygal.Line(
            title="Duplication levels (%)",
            x_labels=DUPLICATION_LEVEL_LABELS,
            x_title="Duplication level",
            y_title="Percentage",
            range=(0.0, 100.0),
            style=pygal.style.DefaultStyle(colors=(COLOR_BLUE, COLOR_RED)),
            **COMMON_GRAPH_OPTIONS
        )
        plot.add("total sequences", self.percentage_total)
        plot.add("deduplicated sequences", self.percentage_deduplicated)
        return plot.render(is_unicode=True)

    def html_body(self) -> str:
        return f"""
            Percentage of sequences remaining if deduplicated:
            {self.total_deduplicated_pct:.2f}%<br>
            <figure>{self.plot()}</figure>
        """


class OverrepresentedSequence(typing.NamedTuple):
    sequence: str
    count: int
    percentage: float
    source: str


class OverrepresentedSequences(QCModule):
    name = "Overrepresented sequences"
    limit_key = "overrepresented"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)
        self.contaminants: ContaminantMatcher = config.contaminants

    def summarize_module(self, snapshot: Snapshot) -> None:
        num_reads = snapshot.number_of_reads
        threshold = num_reads * OVERREPRESENTED_MIN_FRACTION
        candidates = [(sequence, count) for sequence, count
                      in snapshot.sequence_counts.items()
                      if count > threshold]
        candidates.sort(key=lambda item: item[1], reverse=True)
        self.overrepresented_sequences = [
            OverrepresentedSequence(
                sequence, count, percentage(count, num_reads),
                self.contaminants.best_match(sequence))
            for sequence, count in candidates
        ]

    def make_grade(self) -> None:
        for overrepresented in self.overrepresented_sequences:
            if overrepresented.percentage > self.error:
                self._escalate(Grade.FAIL)
            elif overrepresented.percentage > self.warn:
                self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield "#Sequence\tCount\tPercentage\tPossible Source"
        for overrepresented in self.overrepresented_sequences:
            yield tsv_row(*overrepresented)

    def make_html_data(self) -> List[Dict[str, Any]]:
        return [overrepresented._asdict()
                for overrepresented in self.overrepresented_sequences]

    def html_body(self) -> str:
        if not self.overrepresented_sequences:
            return "No overrepresented sequences found."
        return html_table(
            ("Sequence", "Count", "Percentage", "Possible Source"),
            self.overrepresented_sequences)


class AdapterContent(QCModule):
    name = "Adapter Content"
    limit_key = "adapter"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        self.warn, self.error = self._thresholds(config, self.limit_key)
        self.adapters: List[Adapter] = list(config.adapters)

    def summarize_module(self, snapshot: Snapshot) -> None:
        for adapter in self.adapters:
            if len(adapter.sequence) != snapshot.kmer_size:
                raise ConfigurationError(
                    f"Adapter '{adapter.name}' was encoded with length "
                    f"{len(adapter.sequence)}, but k-mers of size "
                    f"{snapshot.kmer_size} were counted.")
        self.num_positions = min(snapshot.max_read_length,
                                 snapshot.kmer_max_position)
        cumulative = [0 for _ in self.adapters]
        self.adapter_content: List[List[float]] = [[] for _ in self.adapters]
        for i in range(self.num_positions):
            position_total = snapshot.kmer_total(i)
            for which, adapter in enumerate(self.adapters):
                cumulative[which] += snapshot.kmer_count(i, adapter.kmer)
                self.adapter_content[which].append(
                    percentage(cumulative[which], position_total))

    def make_grade(self) -> None:
        for content in self.adapter_content:
            for value in content:
                if value > self.error:
                    self._escalate(Grade.FAIL)
                elif value > self.warn:
                    self._escalate(Grade.WARN)

    def text_rows(self) -> Iterator[str]:
        yield "\t".join(["#Position"] + [adapter.name
                                         for adapter in self.adapters])
        for i in range(self.num_positions):
            yield tsv_row(i + 1, *(content[i]
                                   for content in self.adapter_content))

    def make_html_data(self) -> List[Dict[str, Any]]:
        positions = range(1, self.num_positions + 1)
        return [serie(positions, content, name=adapter.name)
                for adapter, content in zip(self.adapters,
                                            self.adapter_content)]

    def plot(self) -> str:
        x_labels = [str(i) for i in range(1, self.num_positions + 1)]
        plot = pygal.Line(
            title="Adapter content (%)",
            range=(0.0, 100.0),
            x_title="position",
            y_title="%",
            legend_at_bottom=True,
            legend_at_bottom_columns=1,
            truncate_legend=-1,
            style=MULTIPLE_SERIES_STYLE,
            **label_settings(x_labels),
            **COMMON_GRAPH_OPTIONS,
        )
        for adapter, content in zip(self.adapters, self.adapter_content):
            plot.add(adapter.name, label_values(content, x_labels))
        return plot.render(is_unicode=True)


class KmerReport(typing.NamedTuple):
    sequence: str
    count: int
    pvalue: str
    obs_exp_max: float
    max_position: int


class KmerContent(QCModule):
    name = "Kmer Content"
    limit_key = "kmer"

    def __init__(self, config: QCConfig):
        super().__init__(config)
        # Any reported k-mer fails the module, but the thresholds must still
        # be present in the limits.
        self.warn, self.error = self._thresholds(config, self.limit_key)

    def summarize_module(self, snapshot: Snapshot) -> None:
        kmer_size = snapshot.kmer_size
        num_positions = min(snapshot.max_read_length,
                            snapshot.kmer_max_position)
        positions = range(kmer_size - 1, num_positions)
        total_kmer_counts: Dict[int, int] = collections.defaultdict(int)
        for i in positions:
            for kmer, count in enumerate(snapshot.kmer_row(i)):
                if count:
                    total_kmer_counts[kmer] += count
        num_seen_kmers = len(total_kmer_counts)

        obs_exp_max: Dict[int, float] = {}
        where_obs_exp_is_max: Dict[int, int] = {}
        for i in positions:
            position_total = snapshot.kmer_total(i)
            if position_total == 0:
                continue  # Nothing observed so every ratio is zero.
            expected = position_total / num_seen_kmers
            for kmer, observed in enumerate(snapshot.kmer_row(i)):
                if not observed:
                    continue
                ratio = observed / expected
                if ratio > obs_exp_max.get(kmer, 0.0):
                    obs_exp_max[kmer] = ratio
                    where_obs_exp_is_max[kmer] = i

        reported = [kmer for kmer in sorted(obs_exp_max)
                    if obs_exp_max[kmer] > KMER_MIN_OBS_EXP]
        reported.sort(key=obs_exp_max.__getitem__, reverse=True)
        self.kmers_to_report = [
            KmerReport(kmer_to_sequence(kmer, kmer_size),
                       total_kmer_counts[kmer], KMER_PVALUE,
                       obs_exp_max[kmer], where_obs_exp_is_max[kmer] + 1)
            for kmer in reported
        ]

    def make_grade(self) -> None:
        if self.kmers_to_report:
            self._escalate(Grade.FAIL)

    def text_rows(self) -> Iterator[str]:
        yield "#Sequence\tCount\tPValue\tObs/Exp Max\tMax Obs/Exp Position"
        for report in self.kmers_to_report[:KMER_REPORT_LIMIT]:
            yield tsv_row(*report)

    def make_html_data(self) -> List[Dict[str, Any]]:
        return [report._asdict()
                for report in self.kmers_to_report[:KMER_REPORT_LIMIT]]

    def html_body(self) -> str:
        if not self.kmers_to_report:
            return "No overrepresented k-mers found."
        return html_table(
            ("Sequence", "Count", "PValue", "Obs/Exp Max",
             "Max Obs/Exp Position"),
            self.kmers_to_report[:KMER_REPORT_LIMIT])


MODULE_CLASSES: Tuple[Type[QCModule], ...] = (
    BasicStatistics,
    PerBaseSequenceQuality,
    PerTileSequenceQuality,
    PerSequenceQualityScores,
    PerBaseSequenceContent,
    PerSequenceGCContent,
    PerBaseNContent,
    SequenceLengthDistribution,
    SequenceDuplicationLevels,
    OverrepresentedSequences,
    AdapterContent,
    KmerContent,
)


def create_modules(config: QCConfig) -> List[QCModule]:
    """Construct every module that is not disabled in the limits."""
    modules = []
    for module_class in MODULE_CLASSES:
        limit_key = module_class.limit_key
        if limit_key is not None and config.limits.ignored(limit_key):
            logger.info("Skipping '%s': disabled by the '%s' limit.",
                        module_class.name, limit_key)
            continue
        modules.append(module_class(config))
    return modules


def summarize_modules(modules: Iterable[QCModule], snapshot: Snapshot):
    for module in modules:
        module.summarize(snapshot)


def report_modules_to_dict(modules: Iterable[QCModule]) -> Dict[str, Any]:
    return {module.anchor: module.to_dict() for module in modules}


def write_text_report(modules: Iterable[QCModule], path: str, version: str):
    with open(path, "wt", encoding="utf-8") as text_file:
        text_file.write(f"##readqc\t{version}\n")
        for module in modules:
            text_file.write(module.text())


def write_short_summary(modules: Iterable[QCModule], path: str,
                        filename: str):
    with open(path, "wt", encoding="utf-8") as summary_file:
        for module in modules:
            summary_file.write(module.short_summary(filename) + "\n")


def write_html_report(modules: Sequence[QCModule],
                      html_path: str,
                      filename: str):
    default_config = pygal.Config()
    basename = html.escape(os.path.basename(filename))
    summary_items = "".join(
        f'<li><a href="#{module.anchor}">{html.escape(module.name)}</a> '
        f'<span style="color:{GRADE_COLORS[str(module.grade)]}">'
        f'[{str(module.grade).upper()}]</span></li>'
        for module in modules
    )
    with open(html_path, "wt", encoding="utf-8") as html_file:
        html_file.write(f"""
            <html>
            <head>
                <script type="text/javascript"
                    src="https://{default_config.js[0]}"></script>
                <meta http-equiv="content-type"
                content="text/html:charset=utf-8">
                <title>{basename}: readqc report</title>
            </head>
            <h1>readqc report</h1>
            file: {html.escape(filename)}<br>
            <h2>Summary</h2>
            <ul>{summary_items}</ul>
        """)
        for module in modules:
            html_file.write(module.to_html())
        html_file.write("</html>")
