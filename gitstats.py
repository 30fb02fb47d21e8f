#!/usr/bin/env python3
"""
Git Contribution Statistics (v1.0.0)

Per-contributor commit and line statistics for a git branch:
- Author alias merging (--merge Alias=Canonical, or grouped aliases in a config file)
- Contributor table ranked by commits or lines changed, with percentage shares
- ASCII activity graphs for the team and each contributor
- Chart payload (JSON) with per-day series for interactive charts
- CSV export of the ranking

Author: Git Stats Team
Version: 1.0.0
"""

import subprocess
import json
import os
import re
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta, timezone
from types import MappingProxyType
from typing import Dict, List, Set, Tuple, Optional, Any, Iterable, Iterator, Mapping
from collections import Counter, defaultdict
from dataclasses import dataclass, field

import click
import pandas as pd
import yaml
from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

colorama_init(autoreset=True)


# Version information
VERSION = "1.0.0"
SCHEMA_VERSION = "1.0.0"

DEFAULT_BRANCH = "main"
DEFAULT_OUTPUT_DIR = "gitstats_output"
DEFAULT_QUERY_TIMEOUT = 60.0

METRIC_COMMITS = "commits"
METRIC_LINES = "lines"
METRICS = (METRIC_COMMITS, METRIC_LINES)

OUTPUT_FORMATS = ("table", "graph", "chart", "csv")

# Supported bucket widths in days
BUCKET_PERIODS = (1, 3, 7, 30, 365)

NAME_COLUMN_MIN_WIDTH = 12
GRAPH_HEIGHT = 8
GRAPH_MAX_COLUMNS = 60
TEAM_LABEL = "Team"

CHART_PALETTE = [
    "#4e79a7",
    "#f28e2b",
    "#e15759",
    "#76b7b2",
    "#59a14f",
    "#edc948",
    "#b07aa1",
    "#ff9da7",
    "#9c755f",
    "#bab0ac",
]

CSV_COLUMNS = [
    "rank",
    "contributor",
    "commits",
    "lines_added",
    "lines_deleted",
    "lines_changed",
    "share_percent",
]


class HistoryQueryError(RuntimeError):
    """A git history query failed or timed out."""


class ReportOutputError(OSError):
    """A report artifact could not be written."""


# ============================================================================
# PROGRESS REPORTING
# ============================================================================


class ProgressReporter:
    """
    Progress and diagnostics channel for the CLI.
    - Color-coded output (colorama)
    - Progress bars (tqdm)

    Everything goes to stderr so stdout only carries the report itself.
    """

    def __init__(
        self, quiet: bool = False, verbose: bool = False, use_colors: bool = True
    ):
        self.quiet = quiet
        self.verbose = verbose
        self.use_colors = use_colors
        self.start_time = time.time()
        self.stage_times = {}

    def _colorize(self, text: str, color: str) -> str:
        """Apply color if enabled"""
        if self.use_colors:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def _emit(self, text: str):
        print(text, file=sys.stderr)

    def stage_start(self, stage_name: str, message: str = ""):
        """Mark the start of a processing stage"""
        if self.quiet:
            return
        self.stage_times[stage_name] = time.time()

        separator = self._colorize("=" * 70, Fore.CYAN)
        self._emit(f"\n{separator}")
        self._emit(self._colorize(f"🔄 {stage_name}", Fore.BLUE + Style.BRIGHT))
        if message:
            self._emit(f"   {message}")
        self._emit(separator)

    def stage_complete(self, stage_name: str, stats: Dict = None):
        """Mark completion of a processing stage"""
        if self.quiet:
            return
        elapsed = time.time() - self.stage_times.get(stage_name, time.time())
        self._emit(
            self._colorize(
                f"✅ {stage_name} complete ({elapsed:.2f}s)", Fore.GREEN + Style.BRIGHT
            )
        )

        if stats and self.verbose:
            for key, value in stats.items():
                self._emit(f"   {key}: {value}")

    def create_progress_bar(
        self, total: int, desc: str = "Processing", unit: str = " authors"
    ) -> Optional[tqdm]:
        if self.quiet:
            return None

        return tqdm(
            total=total,
            desc=self._colorize(desc, Fore.CYAN),
            unit=unit,
            ncols=100,
            file=sys.stderr,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
        )

    def info(self, message: str):
        if not self.quiet:
            self._emit(f"{self._colorize('ℹ️  ', Fore.BLUE)}{message}")

    def warning(self, message: str):
        if not self.quiet:
            self._emit(f"{self._colorize('⚠️  ', Fore.YELLOW + Style.BRIGHT)}{message}")

    def error(self, message: str):
        """Display error message (always shown)"""
        self._emit(self._colorize(f"❌ ERROR: {message}", Fore.RED + Style.BRIGHT))

    def success(self, message: str):
        if not self.quiet:
            self._emit(self._colorize(f"✨ {message}", Fore.GREEN + Style.BRIGHT))

    def summary(self, stats: Dict[str, Any]):
        """Display final summary"""
        if self.quiet:
            return
        elapsed = time.time() - self.start_time

        separator = self._colorize("=" * 70, Fore.CYAN)
        self._emit(f"\n{separator}")
        self._emit(self._colorize("📊 CONTRIBUTION SUMMARY", Fore.MAGENTA + Style.BRIGHT))
        self._emit(separator)
        for key, value in stats.items():
            self._emit(f"   {key}: {value}")
        self._emit(self._colorize(f"\n⏱️  Total time: {elapsed:.2f}s", Fore.YELLOW))
        self._emit(f"{separator}\n")


# ============================================================================
# AUTHOR ALIASES
# ============================================================================


@dataclass(frozen=True)
class AliasMap:
    """
    Mapping from raw author identity to canonical identity.

    Built once at startup and never mutated afterwards. An identity with no
    entry is its own canonical form. Resolution is a single lookup, so
    ``a=b`` plus ``b=c`` resolves ``a`` to ``b``, not ``c``.

    Entries without a ``=`` separator are ignored instead of failing the run;
    they are kept in ``rejected`` so the caller can mention them.
    """

    mapping: Mapping[str, str] = field(default_factory=dict)
    rejected: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "mapping", MappingProxyType(dict(self.mapping)))
        object.__setattr__(self, "rejected", tuple(self.rejected))

    @classmethod
    def from_pairs(cls, pairs: Iterable[str]) -> "AliasMap":
        """
        Build from ``Alias=Canonical`` strings.

        The split happens at the first ``=``; a later pair for the same alias
        replaces the earlier one.
        """
        mapping = {}
        rejected = []
        for entry in pairs or ():
            alias, separator, canonical = entry.partition("=")
            if not separator:
                rejected.append(entry)
                continue
            mapping[alias] = canonical
        return cls(mapping, tuple(rejected))

    @classmethod
    def from_groups(cls, groups: Optional[Mapping[str, Any]]) -> "AliasMap":
        """Build from ``{canonical: [alias, ...]}`` (config file ``aliases:`` key)."""
        mapping = {}
        for canonical, aliases in (groups or {}).items():
            if isinstance(aliases, str):
                aliases = [aliases]
            for alias in aliases or ():
                mapping[str(alias)] = str(canonical)
        return cls(mapping)

    def combine(self, other: "AliasMap") -> "AliasMap":
        """Return a new map with ``other``'s entries taking precedence."""
        merged = dict(self.mapping)
        merged.update(other.mapping)
        return AliasMap(merged, self.rejected + other.rejected)

    def resolve(self, raw_identity: str) -> str:
        return self.mapping.get(raw_identity, raw_identity)

    def aliases_for(self, canonical: str) -> List[str]:
        return sorted(
            alias
            for alias, target in self.mapping.items()
            if target == canonical and alias != canonical
        )

    def __len__(self) -> int:
        return len(self.mapping)


# ============================================================================
# RECORD NORMALIZATION
# ============================================================================


@dataclass(frozen=True)
class RawRecord:
    """
    One unit of evidence from the history: either a commit marker or the
    added/deleted line counts of one changed file, under the raw author name.
    """

    author: str
    date: str
    is_commit: bool = False
    lines_added: int = 0
    lines_deleted: int = 0


def is_date_marker(line: str) -> bool:
    """
    Recognize a ``YYYY-MM-DD`` line as printed by ``--date=short``.
    Structural only: length 10 with ``-`` at positions 4 and 7.
    """
    return len(line) == 10 and line[4] == "-" and line[7] == "-"


def parse_numstat_line(line: str) -> Optional[Tuple[int, int]]:
    """
    Parse an ``<added> <deleted> <path>`` line from ``git log --numstat``.

    Each count is parsed on its own; a non-numeric count (``-`` for binary
    files) contributes 0. Returns None when neither count is numeric.
    """
    parts = line.split()
    if len(parts) < 2:
        return None

    counts = []
    for part in parts[:2]:
        try:
            value = int(part)
        except ValueError:
            value = None
        counts.append(value if value is not None and value >= 0 else None)

    if counts[0] is None and counts[1] is None:
        return None
    return (counts[0] or 0, counts[1] or 0)


def count_commit_lines(text: str) -> int:
    """One non-empty line per commit."""
    return sum(1 for line in text.splitlines() if line.strip())


def parse_line_totals(text: str) -> Tuple[int, int]:
    added = 0
    deleted = 0
    for line in text.splitlines():
        delta = parse_numstat_line(line)
        if delta:
            added += delta[0]
            deleted += delta[1]
    return added, deleted


def to_date_series(counts: Mapping[str, int]) -> Dict[str, int]:
    """Plain dict ordered by date ascending."""
    return dict(sorted(counts.items()))


def parse_commit_dates(text: str) -> Dict[str, int]:
    """Count ``--date=short`` lines per date; anything else is dropped."""
    counts = Counter()
    for line in text.splitlines():
        line = line.strip()
        if is_date_marker(line):
            counts[line] += 1
    return to_date_series(counts)


def parse_dated_numstat(text: str) -> Dict[str, int]:
    """
    Sum ``added + deleted`` per date from a stream of date markers, each
    followed by zero or more numstat lines.

    The date check runs before numstat parsing. Numstat lines seen before
    the first marker have no date and are discarded.
    """
    counts = Counter()
    current_date = None
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if is_date_marker(line):
            current_date = line
            continue
        if current_date is None:
            continue
        delta = parse_numstat_line(line)
        if delta is None:
            continue
        counts[current_date] += delta[0] + delta[1]
    return to_date_series(counts)


def parse_authors(text: str) -> List[str]:
    return sorted({line for line in text.splitlines() if line.strip()})


def parse_log_records(text: str) -> Iterator[RawRecord]:
    """
    Stream ``RawRecord``s from ``git log --format=%x00%aN%x00%ad --date=short
    --numstat``.

    A header line yields one commit record; each numstat line after it yields
    one line record for the same author and date. A header whose date field
    is not a date marker is skipped together with its numstat lines.
    """
    author = None
    current_date = None
    for line in text.splitlines():
        if not line.strip():
            continue

        if "\x00" in line:
            parts = line.split("\x00")
            if len(parts) < 3 or not is_date_marker(parts[2].strip()):
                author = current_date = None
                continue
            author, current_date = parts[1], parts[2].strip()
            yield RawRecord(author, current_date, is_commit=True)
            continue

        if author is None:
            continue
        delta = parse_numstat_line(line)
        if delta is None:
            continue
        yield RawRecord(
            author, current_date, lines_added=delta[0], lines_deleted=delta[1]
        )


# ============================================================================
# GIT HISTORY READER
# ============================================================================


@dataclass
class AuthorSnapshot:
    """Everything queried for one raw author identity."""

    author: str
    commits: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    commits_by_date: Dict[str, int] = field(default_factory=dict)
    lines_by_date: Dict[str, int] = field(default_factory=dict)


_ERE_SPECIAL = re.compile(r"([\\.\[\]()*+?{}|^$])")


def author_pattern(author: str) -> str:
    """
    Extended regex matching exactly ``author`` in a ``Name <email>`` ident,
    so ``bob`` does not also select ``bobby``.
    """
    escaped = _ERE_SPECIAL.sub(r"\\\1", author)
    return f"^{escaped} <"


class GitHistoryReader:
    """
    Read-only queries against ``git log`` for one branch and date window.

    Every query is a blocking ``subprocess.run`` with a timeout; failures and
    timeouts raise HistoryQueryError. Empty history gives empty results.
    """

    def __init__(
        self,
        repo_path: str,
        branch: str,
        since: Optional[str] = None,
        until: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_QUERY_TIMEOUT,
    ):
        self.repo_path = os.path.abspath(repo_path)
        self.branch = branch
        self.since = since
        self.until = until
        self.timeout = timeout

    @staticmethod
    def current_branch(repo_path: str) -> str:
        """Checked-out branch name, or ``main`` if git cannot tell."""
        try:
            result = subprocess.run(
                ["git", "-C", repo_path, "rev-parse", "--abbrev-ref", "HEAD"],
                capture_output=True,
                text=True,
            )
        except OSError:
            return DEFAULT_BRANCH
        branch = result.stdout.strip()
        if result.returncode != 0 or not branch:
            return DEFAULT_BRANCH
        return branch

    @staticmethod
    def is_repository(repo_path: str) -> bool:
        try:
            result = subprocess.run(
                ["git", "-C", repo_path, "rev-parse", "--git-dir"],
                capture_output=True,
                text=True,
            )
        except OSError:
            return False
        return result.returncode == 0

    def _run_log(self, args: List[str]) -> str:
        cmd = ["git", "-C", self.repo_path, "log", self.branch, "--use-mailmap"]
        cmd.extend(args)
        if self.since:
            cmd.append(f"--since={self.since}")
        if self.until:
            cmd.append(f"--until={self.until}")
        cmd.append("--")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise HistoryQueryError(
                f"git log timed out after {self.timeout}s ({' '.join(args)})"
            ) from e
        except OSError as e:
            raise HistoryQueryError(f"Could not run git: {e}") from e

        if result.returncode != 0:
            raise HistoryQueryError(f"Git command failed: {result.stderr.strip()}")
        return result.stdout

    def _author_args(self, author: Optional[str]) -> List[str]:
        if author is None:
            return []
        return ["--extended-regexp", f"--author={author_pattern(author)}"]

    def list_authors(self) -> List[str]:
        return parse_authors(self._run_log(["--format=%aN"]))

    def commit_count(self, author: str) -> int:
        return count_commit_lines(
            self._run_log(self._author_args(author) + ["--format=%H"])
        )

    def line_stats(self, author: str) -> Tuple[int, int]:
        return parse_line_totals(
            self._run_log(self._author_args(author) + ["--pretty=tformat:", "--numstat"])
        )

    def commits_by_date(self, author: Optional[str] = None) -> Dict[str, int]:
        return parse_commit_dates(
            self._run_log(self._author_args(author) + ["--format=%ad", "--date=short"])
        )

    def lines_by_date(self, author: Optional[str] = None) -> Dict[str, int]:
        return parse_dated_numstat(
            self._run_log(
                self._author_args(author)
                + ["--pretty=format:%ad", "--date=short", "--numstat"]
            )
        )

    def log_records(self) -> List[RawRecord]:
        """Whole window in one pass, as raw records."""
        return list(
            parse_log_records(
                self._run_log(
                    ["--format=%x00%aN%x00%ad", "--date=short", "--numstat"]
                )
            )
        )

    def snapshot(self, author: str) -> AuthorSnapshot:
        added, deleted = self.line_stats(author)
        return AuthorSnapshot(
            author=author,
            commits=self.commit_count(author),
            lines_added=added,
            lines_deleted=deleted,
            commits_by_date=self.commits_by_date(author),
            lines_by_date=self.lines_by_date(author),
        )


# ============================================================================
# AGGREGATION
# ============================================================================


@dataclass
class ContributorStats:
    """Running totals for one canonical identity. Only ever grows."""

    commits: int = 0
    lines_added: int = 0
    lines_deleted: int = 0

    @property
    def lines_changed(self) -> int:
        return self.lines_added + self.lines_deleted

    def accumulate(self, commits: int = 0, lines_added: int = 0, lines_deleted: int = 0):
        if commits < 0 or lines_added < 0 or lines_deleted < 0:
            raise ValueError("Contribution counts cannot be negative")
        self.commits += commits
        self.lines_added += lines_added
        self.lines_deleted += lines_deleted

    def metric(self, metric: str) -> int:
        if metric == METRIC_COMMITS:
            return self.commits
        if metric == METRIC_LINES:
            return self.lines_changed
        raise ValueError(f"Unknown metric: {metric!r} (expected one of {METRICS})")

    def to_dict(self) -> Dict[str, int]:
        return {
            "commits": self.commits,
            "lines_added": self.lines_added,
            "lines_deleted": self.lines_deleted,
            "lines_changed": self.lines_changed,
        }


class AggregationContext:
    """
    Per-invocation accumulation state, keyed by canonical identity.

    Holds contributor totals, per-author and team date series, which raw
    identities were merged into each canonical one, and the authors skipped
    after a failed query. Merges are sums, so input order does not matter.

    Date keys that only look like dates (a numstat line can pass the marker
    check) still count towards the totals but are kept out of the date
    series and listed in ``invalid_dates``.
    """

    def __init__(self, aliases: Optional[AliasMap] = None):
        self.aliases = aliases or AliasMap()
        self.stats: Dict[str, ContributorStats] = {}
        self.skipped: List[Tuple[str, str]] = []
        self.invalid_dates: Set[str] = set()
        self._commit_series: Dict[str, Counter] = defaultdict(Counter)
        self._line_series: Dict[str, Counter] = defaultdict(Counter)
        self._team_commits = Counter()
        self._team_lines = Counter()
        self._raw_identities: Dict[str, Set[str]] = defaultdict(set)

    def _entry(self, raw_author: str) -> Tuple[str, ContributorStats]:
        canonical = self.aliases.resolve(raw_author)
        self._raw_identities[canonical].add(raw_author)
        if canonical not in self.stats:
            self.stats[canonical] = ContributorStats()
        return canonical, self.stats[canonical]

    def _dated(self, series: Mapping[str, int]) -> Dict[str, int]:
        kept = {}
        for day, value in series.items():
            if is_calendar_date(day):
                kept[day] = value
            else:
                self.invalid_dates.add(day)
        return kept

    def add_record(self, record: RawRecord):
        canonical, entry = self._entry(record.author)
        if record.is_commit:
            entry.accumulate(commits=1)
            delta = self._dated({record.date: 1})
            self._commit_series[canonical].update(delta)
            self._team_commits.update(delta)
        else:
            entry.accumulate(
                lines_added=record.lines_added, lines_deleted=record.lines_deleted
            )
            delta = self._dated({record.date: record.lines_added + record.lines_deleted})
            self._line_series[canonical].update(delta)
            self._team_lines.update(delta)

    def add_records(self, records: Iterable[RawRecord]) -> "AggregationContext":
        for record in records:
            self.add_record(record)
        return self

    def merge(self, snapshot: AuthorSnapshot):
        """Fold one author's query results into its canonical entry."""
        canonical, entry = self._entry(snapshot.author)
        entry.accumulate(snapshot.commits, snapshot.lines_added, snapshot.lines_deleted)
        commits_by_date = self._dated(snapshot.commits_by_date)
        lines_by_date = self._dated(snapshot.lines_by_date)
        self._commit_series[canonical].update(commits_by_date)
        self._line_series[canonical].update(lines_by_date)
        self._team_commits.update(commits_by_date)
        self._team_lines.update(lines_by_date)

    def record_failure(self, author: str, reason: str):
        self.skipped.append((author, reason))

    def raw_identities(self, canonical: str) -> List[str]:
        return sorted(self._raw_identities.get(canonical, ()))

    def commit_series(self, canonical: str) -> Dict[str, int]:
        return to_date_series(self._commit_series.get(canonical, {}))

    def line_series(self, canonical: str) -> Dict[str, int]:
        return to_date_series(self._line_series.get(canonical, {}))

    def team_commit_series(self) -> Dict[str, int]:
        return to_date_series(self._team_commits)

    def team_line_series(self) -> Dict[str, int]:
        return to_date_series(self._team_lines)

    def series_for(self, canonical: Optional[str], metric: str) -> Dict[str, int]:
        """Date series of ``metric`` for one contributor, or the team when None."""
        if metric not in METRICS:
            raise ValueError(f"Unknown metric: {metric!r} (expected one of {METRICS})")
        if canonical is None:
            if metric == METRIC_COMMITS:
                return self.team_commit_series()
            return self.team_line_series()
        if metric == METRIC_COMMITS:
            return self.commit_series(canonical)
        return self.line_series(canonical)

    @property
    def is_empty(self) -> bool:
        return not self.stats


# ============================================================================
# TIME BUCKETING
# ============================================================================


def is_calendar_date(day: str) -> bool:
    """True when ``day`` is a real ``YYYY-MM-DD`` date, not just shaped like one."""
    try:
        date.fromisoformat(day)
    except (TypeError, ValueError):
        return False
    return True


def _calendar_days(series: Mapping[str, int]) -> Dict[str, int]:
    return {day: value for day, value in series.items() if is_calendar_date(day)}


def _check_period(period: int):
    if period not in BUCKET_PERIODS:
        raise ValueError(
            f"Unsupported bucket period: {period} (expected one of {BUCKET_PERIODS})"
        )


def bucket_key(day: str, period: int) -> str:
    """
    Start date of the bucket holding ``day``.

    Buckets are aligned within the month: the day of month is counted from
    zero and rounded down to a multiple of ``period``, so boundaries restart
    on the 1st of every month. With period 7, days 1-7 map to the 1st and
    days 8-14 to the 8th; with period 30, the 31st is a bucket of its own.
    """
    _check_period(period)
    if period == 1:
        return day
    offset = int(day[8:10]) - 1
    start = offset - offset % period + 1
    return f"{day[:8]}{start:02d}"


def bucket_series(series: Mapping[str, int], period: int) -> Dict[str, int]:
    """Re-group a date series into period buckets. The total is unchanged."""
    _check_period(period)
    if period == 1:
        return to_date_series(series)

    buckets = Counter()
    for day, value in series.items():
        buckets[bucket_key(day, period)] += value
    return to_date_series(buckets)


def date_range(start: str, end: str) -> List[str]:
    """Every calendar day from ``start`` to ``end`` inclusive."""
    first = date.fromisoformat(start)
    last = date.fromisoformat(end)
    return [
        (first + timedelta(days=offset)).isoformat()
        for offset in range((last - first).days + 1)
    ]


def fill_gaps(
    series_by_name: Mapping[Any, Mapping[str, int]], period: int = 1
) -> Tuple[List[str], Dict[Any, List[int]]]:
    """
    Express several series over one shared key list.

    Keys are the bucket keys of every day between the earliest and latest date
    across all series; each series gets one value per key, 0 where it has no
    data. Keys that are not calendar dates are left out.
    """
    _check_period(period)
    series_by_name = {
        name: _calendar_days(series) for name, series in series_by_name.items()
    }
    all_days = [day for series in series_by_name.values() for day in series]
    if not all_days:
        return [], {name: [] for name in series_by_name}

    keys = sorted(
        {bucket_key(day, period) for day in date_range(min(all_days), max(all_days))}
    )
    filled = {}
    for name, series in series_by_name.items():
        buckets = bucket_series(series, period)
        filled[name] = [buckets.get(key, 0) for key in keys]
    return keys, filled


def choose_period(start: str, end: str, max_columns: int) -> int:
    """Finest supported period whose bucket count fits in ``max_columns``."""
    days = date_range(start, end)
    for period in BUCKET_PERIODS:
        if len({bucket_key(day, period) for day in days}) <= max_columns:
            return period
    return BUCKET_PERIODS[-1]


# ============================================================================
# RANKING & REPORTING
# ============================================================================


@dataclass
class RankedEntry:
    name: str
    stats: ContributorStats
    share: float


@dataclass
class RankedReport:
    """Contributors in ranking order plus the column totals."""

    metric: str
    entries: List[RankedEntry] = field(default_factory=list)
    totals: ContributorStats = field(default_factory=ContributorStats)

    @property
    def total_metric(self) -> int:
        return self.totals.metric(self.metric)

    def names(self) -> List[str]:
        return [entry.name for entry in self.entries]

    def to_records(self) -> List[Dict[str, Any]]:
        return [
            {
                "rank": position,
                "contributor": entry.name,
                "commits": entry.stats.commits,
                "lines_added": entry.stats.lines_added,
                "lines_deleted": entry.stats.lines_deleted,
                "lines_changed": entry.stats.lines_changed,
                "share_percent": round(entry.share, 2),
            }
            for position, entry in enumerate(self.entries, start=1)
        ]


def rank(
    stats_by_canonical: Mapping[str, ContributorStats], metric: str = METRIC_COMMITS
) -> RankedReport:
    """
    Sort contributors by ``metric`` (descending) and compute percentage shares.

    Ties are broken by canonical name ascending so identical input always
    produces identical output. Shares are 0.0 when the metric total is 0.
    """
    if metric not in METRICS:
        raise ValueError(f"Unknown metric: {metric!r} (expected one of {METRICS})")

    totals = ContributorStats()
    for stats in stats_by_canonical.values():
        totals.accumulate(stats.commits, stats.lines_added, stats.lines_deleted)
    total = totals.metric(metric)

    ordered = sorted(
        stats_by_canonical.items(), key=lambda item: (-item[1].metric(metric), item[0])
    )
    entries = [
        RankedEntry(name, stats, stats.metric(metric) / total * 100 if total else 0.0)
        for name, stats in ordered
    ]
    return RankedReport(metric=metric, entries=entries, totals=totals)


def render_table(report: RankedReport, branch: Optional[str] = None) -> str:
    name_width = max(
        [len(entry.name) for entry in report.entries] + [NAME_COLUMN_MIN_WIDTH]
    )

    def row(name, commits, added, deleted, share) -> str:
        return (
            f"| {name:<{name_width}} | {commits:>8} | {added:>11} "
            f"| {deleted:>13} | {share:>7} |"
        )

    separator = (
        f"|{'-' * (name_width + 2)}|{'-' * 10}|{'-' * 13}|{'-' * 15}|{'-' * 9}|"
    )

    lines = []
    if branch:
        lines.extend([f"Branch: {branch}", ""])
    lines.append(row("Contributor", "Commits", "Lines added", "Lines deleted", "Share"))
    lines.append(separator)
    for entry in report.entries:
        lines.append(
            row(
                entry.name,
                entry.stats.commits,
                entry.stats.lines_added,
                entry.stats.lines_deleted,
                f"{entry.share:.1f}%",
            )
        )
    lines.append(separator)
    lines.append(
        row(
            "TOTAL",
            report.totals.commits,
            report.totals.lines_added,
            report.totals.lines_deleted,
            "100.0%" if report.total_metric else "0.0%",
        )
    )
    return "\n".join(lines)


def render_ascii_graph(
    series: Mapping[str, int],
    title: str,
    height: int = GRAPH_HEIGHT,
    max_columns: int = GRAPH_MAX_COLUMNS,
) -> str:
    """
    Bar graph of a date series, one column per bucket.

    Row ``r`` (0 at the bottom) of ``height`` rows is filled for a column iff
    its value is greater than ``r / height * max``. The bucket width is the
    finest one that keeps the graph within ``max_columns``. Yearly buckets
    still restart every month, so a history longer than ``max_columns``
    months shows only its most recent ``max_columns`` buckets.
    """
    if height < 1:
        raise ValueError("Graph height must be at least 1")
    series = _calendar_days(series)
    if not series:
        return f"{title}\n  No data"

    days = sorted(series)
    period = choose_period(days[0], days[-1], max_columns)
    keys, filled = fill_gaps({title: series}, period)
    keys = keys[-max_columns:]
    values = filled[title][-max_columns:]
    peak = max(values)
    label_width = len(str(peak))

    lines = [title]
    for level in range(height - 1, -1, -1):
        threshold = level / height * peak
        cells = "".join("#" if value > threshold else " " for value in values)
        label = str(peak) if level == height - 1 else ""
        lines.append(f"{label:>{label_width}} |{cells}")
    lines.append(f"{'':>{label_width}} +{'-' * len(values)}")

    unit = "day" if period == 1 else f"{period}-day"
    lines.append(f"{'':>{label_width}}  {keys[0]} .. {keys[-1]} ({unit} buckets)")
    return "\n".join(lines)


def render_activity_graphs(
    context: AggregationContext,
    report: RankedReport,
    metric: str = METRIC_COMMITS,
    height: int = GRAPH_HEIGHT,
) -> str:
    """Team graph first, then one graph per contributor in ranking order."""
    label = "commits" if metric == METRIC_COMMITS else "lines changed"
    blocks = [
        render_ascii_graph(
            context.series_for(None, metric), f"{TEAM_LABEL} ({label})", height
        )
    ]
    for entry in report.entries:
        blocks.append(
            render_ascii_graph(
                context.series_for(entry.name, metric),
                f"{entry.name} ({label})",
                height,
            )
        )
    return "\n\n".join(blocks)


def build_chart_payload(
    report: RankedReport,
    context: AggregationContext,
    branch: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Data for the interactive chart page.

    All series are per day and aligned to one shared ``dates`` list covering
    the whole window, so the page can re-bucket to any of ``periods`` itself.
    """
    series = {
        (None, METRIC_COMMITS): context.team_commit_series(),
        (None, METRIC_LINES): context.team_line_series(),
    }
    for name in report.names():
        series[(name, METRIC_COMMITS)] = context.commit_series(name)
        series[(name, METRIC_LINES)] = context.line_series(name)
    dates, filled = fill_gaps(series)

    contributors = []
    for position, entry in enumerate(report.entries):
        contributors.append(
            {
                "name": entry.name,
                "aliases": [
                    raw for raw in context.raw_identities(entry.name) if raw != entry.name
                ],
                **entry.stats.to_dict(),
                "share": round(entry.share, 2),
                "color": CHART_PALETTE[position % len(CHART_PALETTE)],
                "commits_series": filled[(entry.name, METRIC_COMMITS)],
                "lines_series": filled[(entry.name, METRIC_LINES)],
            }
        )

    return {
        "schema_version": SCHEMA_VERSION,
        "generator_version": VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "branch": branch,
        "since": since,
        "until": until,
        "metric": report.metric,
        "periods": list(BUCKET_PERIODS),
        "has_data": bool(dates),
        "dates": dates,
        "team": {
            **report.totals.to_dict(),
            "commits_series": filled[(None, METRIC_COMMITS)],
            "lines_series": filled[(None, METRIC_LINES)],
        },
        "contributors": contributors,
        "skipped": [{"author": author, "reason": reason} for author, reason in context.skipped],
    }


def _ensure_parent(path: str):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


def write_json(data: Dict[str, Any], output_path: str) -> str:
    """Serialize first, so a payload that cannot be encoded leaves no file behind."""
    try:
        text = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ReportOutputError(f"Cannot encode {output_path}: {e}") from e
    try:
        _ensure_parent(output_path)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise ReportOutputError(f"Cannot write {output_path}: {e}") from e
    return output_path


def export_csv(report: RankedReport, output_path: str) -> str:
    """Write the ranking as CSV, one row per contributor."""
    frame = pd.DataFrame(report.to_records(), columns=CSV_COLUMNS)
    try:
        _ensure_parent(output_path)
        frame.to_csv(output_path, index=False, encoding="utf-8")
    except OSError as e:
        raise ReportOutputError(f"Cannot write {output_path}: {e}") from e
    return output_path


# ============================================================================
# COLLECTION PIPELINE
# ============================================================================


def collect_statistics(
    reader: GitHistoryReader,
    aliases: Optional[AliasMap] = None,
    max_workers: int = 1,
    reporter: Optional[ProgressReporter] = None,
) -> AggregationContext:
    """
    Query every raw author and fold the results into a new context.

    With ``max_workers > 1`` the per-author queries run in a thread pool;
    snapshots come back to this thread and are merged here only. A failed
    or timed-out author query is logged and recorded in ``context.skipped``.
    Failing to list the authors is fatal.
    """
    reporter = reporter or ProgressReporter(quiet=True)
    context = AggregationContext(aliases)

    reporter.stage_start("History Queries", f"Listing authors on {reader.branch}...")
    try:
        authors = reader.list_authors()
    except HistoryQueryError as e:
        reporter.error(f"Failed to list authors: {e}")
        raise

    progress_bar = reporter.create_progress_bar(
        total=len(authors), desc="Querying authors"
    )

    def skip(author: str, error: Exception):
        context.record_failure(author, str(error))
        reporter.warning(f"Skipping {author}: {error}")

    if max_workers <= 1:
        for author in authors:
            try:
                context.merge(reader.snapshot(author))
            except HistoryQueryError as e:
                skip(author, e)
            if progress_bar:
                progress_bar.update(1)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_map = {executor.submit(reader.snapshot, a): a for a in authors}
            for future in as_completed(future_map):
                author = future_map[future]
                try:
                    context.merge(future.result())
                except HistoryQueryError as e:
                    skip(author, e)
                if progress_bar:
                    progress_bar.update(1)

    if progress_bar:
        progress_bar.close()

    reporter.stage_complete(
        "History Queries",
        {
            "Raw authors": f"{len(authors):,}",
            "Contributors": f"{len(context.stats):,}",
            "Skipped": f"{len(context.skipped):,}",
        },
    )
    return context


def collect_from_log(
    reader: GitHistoryReader,
    aliases: Optional[AliasMap] = None,
    reporter: Optional[ProgressReporter] = None,
) -> AggregationContext:
    """Single ``git log`` pass over the window, aggregated record by record."""
    reporter = reporter or ProgressReporter(quiet=True)
    reporter.stage_start("History Scan", f"Reading {reader.branch} in one pass...")
    try:
        records = reader.log_records()
    except HistoryQueryError as e:
        reporter.error(f"Failed to read history: {e}")
        raise

    context = AggregationContext(aliases).add_records(records)
    reporter.stage_complete(
        "History Scan",
        {"Records": f"{len(records):,}", "Contributors": f"{len(context.stats):,}"},
    )
    return context


# ============================================================================
# CONFIGURATION
# ============================================================================


CONFIG_NAMES = [".gitstats.yaml", ".gitstats.yml", ".gitstats.json"]

TEXT_SETTINGS = ("branch", "since", "until", "output")

PRESETS = {
    "summary": {"formats": ["table"]},
    "activity": {"formats": ["table", "graph"]},
    "full": {"formats": ["table", "graph", "chart", "csv"]},
}


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML or JSON file."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    file_ext = os.path.splitext(config_path)[1].lower()

    with open(config_path, "r", encoding="utf-8") as f:
        if file_ext in [".yaml", ".yml"]:
            data = yaml.safe_load(f)
        elif file_ext == ".json":
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_ext}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration must be a mapping: {config_path}")
    return data


def find_config_file(repo_path: str) -> Optional[str]:
    """Look for a config file in the repository, then the current directory."""
    for search_dir in [repo_path, os.getcwd()]:
        for config_name in CONFIG_NAMES:
            config_path = os.path.join(search_dir, config_name)
            if os.path.exists(config_path):
                return config_path
    return None


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


class ConfigResolver:
    """
    Resolve settings with precedence: CLI > config file > preset > defaults.
    """

    def __init__(
        self,
        cli_args: Dict[str, Any],
        config_path: Optional[str],
        preset_name: Optional[str],
        repo_path: str,
        reporter: Optional[ProgressReporter] = None,
    ):
        self.cli = {k: v for k, v in cli_args.items() if v is not None}
        self.config = {}
        self.config_path = config_path

        if config_path:
            self.config = load_config_file(config_path)
        else:
            auto_path = find_config_file(repo_path)
            if auto_path:
                try:
                    self.config = load_config_file(auto_path)
                    self.config_path = auto_path
                except (OSError, ValueError, yaml.YAMLError) as e:
                    if reporter:
                        reporter.warning(f"Found config file but failed to load: {e}")

        self.config = {k.replace("-", "_"): v for k, v in self.config.items()}
        # YAML reads `since: 2025-01-01` as a date and `branch: 2025` as an int
        for key in TEXT_SETTINGS:
            if self.config.get(key) is not None:
                self.config[key] = str(self.config[key])
        self.preset = PRESETS.get(preset_name or self.config.get("preset"), {})

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.cli:
            return self.cli[key]
        if key in self.config:
            return self.config[key]
        if key in self.preset:
            return self.preset[key]
        return default

    def formats(self) -> List[str]:
        formats = [f.lower() for f in _as_list(self.get("formats", ["table"]))]
        unknown = [f for f in formats if f not in OUTPUT_FORMATS]
        if unknown:
            raise ValueError(f"Unknown output format(s): {', '.join(unknown)}")
        return formats

    def alias_map(self) -> AliasMap:
        """Config ``aliases`` groups, then config ``merge`` pairs, then CLI ``--merge``."""
        aliases = AliasMap.from_groups(self.config.get("aliases"))
        aliases = aliases.combine(AliasMap.from_pairs(_as_list(self.config.get("merge"))))
        return aliases.combine(AliasMap.from_pairs(self.cli.get("merge", ())))


# ============================================================================
# CLI INTERFACE
# ============================================================================


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument(
    "repo_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    required=False,
)
@click.option("-b", "--branch", help="Branch to analyze (default: current branch)")
@click.option("-s", "--since", help="Start date (e.g., 2025-01-01)")
@click.option("-u", "--until", help="End date (e.g., 2025-12-31)")
@click.option(
    "-m",
    "--merge",
    multiple=True,
    help="Merge authors (format: Alias=CanonicalName), repeatable",
)
@click.option(
    "--sort",
    type=click.Choice(METRICS),
    help="Ranking metric: commits or lines changed (default: commits)",
)
@click.option(
    "-f",
    "--format",
    "formats",
    multiple=True,
    type=click.Choice(OUTPUT_FORMATS),
    help="Output format, repeatable (default: table)",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False),
    help=f"Directory for chart/csv files (default: {DEFAULT_OUTPUT_DIR})",
)
@click.option("--graph-height", type=click.IntRange(min=1), help="ASCII graph rows")
@click.option(
    "--workers", type=click.IntRange(min=1), help="Parallel author queries (default: 1)"
)
@click.option("--timeout", type=float, help="Seconds allowed per git query")
@click.option(
    "--single-pass",
    is_flag=True,
    default=None,
    help="Read the history with one git log call instead of per-author queries",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path (.yaml or .json)",
)
@click.option(
    "--preset",
    type=click.Choice(sorted(PRESETS)),
    help="Predefined output selection",
)
@click.option(
    "-q", "--quiet", is_flag=True, default=None, help="Suppress progress output"
)
@click.option(
    "-v", "--verbose", is_flag=True, default=None, help="Show detailed progress"
)
@click.option("--no-color", is_flag=True, default=None, help="Disable colored output")
@click.option(
    "--dry-run", is_flag=True, help="Show what would be generated without running"
)
@click.version_option(version=VERSION)
def main(repo_path, config, preset, merge, formats, **kwargs):
    """
    Git Contribution Statistics - commits and lines per contributor.

    Aggregates the history of one branch per author, merges aliases, and
    prints a ranked table, ASCII activity graphs, a JSON chart payload and/or
    a CSV ranking.
    """
    kwargs["merge"] = list(merge) or None
    kwargs["formats"] = list(formats) or None

    try:
        resolver = ConfigResolver(kwargs, config, preset, repo_path)
        output_formats = resolver.formats()
    except (OSError, ValueError, yaml.YAMLError) as e:
        ProgressReporter(use_colors=False).error(f"Invalid configuration: {e}")
        sys.exit(1)

    quiet = resolver.get("quiet", False)
    verbose = resolver.get("verbose", False)
    reporter = ProgressReporter(
        quiet=quiet, verbose=verbose, use_colors=not resolver.get("no_color", False)
    )

    if resolver.config_path:
        reporter.info(f"Using configuration: {resolver.config_path}")

    aliases = resolver.alias_map()
    if verbose and aliases.rejected:
        reporter.info(
            "Ignoring alias entries without '=': " + ", ".join(aliases.rejected)
        )

    since = resolver.get("since")
    until = resolver.get("until")
    metric = resolver.get("sort", METRIC_COMMITS)
    if metric not in METRICS:
        reporter.error(f"Unknown sort metric: {metric}")
        sys.exit(1)
    output_dir = resolver.get("output", DEFAULT_OUTPUT_DIR)
    graph_height = int(resolver.get("graph_height", GRAPH_HEIGHT))
    workers = int(resolver.get("workers", 1))
    timeout = float(resolver.get("timeout", DEFAULT_QUERY_TIMEOUT))
    single_pass = resolver.get("single_pass", False)

    if not GitHistoryReader.is_repository(repo_path):
        reporter.error(f"Not a git repository: {repo_path}")
        sys.exit(1)
    branch = resolver.get("branch") or GitHistoryReader.current_branch(repo_path)

    if resolver.get("dry_run", False):
        reporter.info("DRY RUN MODE - No analysis will be performed")
        reporter.info(f"Repository: {repo_path}")
        reporter.info(f"Branch: {branch}")
        reporter.info(f"Window: {since or 'beginning'} .. {until or 'now'}")
        reporter.info(f"Alias entries: {len(aliases)}")
        for canonical in sorted(set(aliases.mapping.values())):
            merged = aliases.aliases_for(canonical)
            if merged:
                reporter.info(f"  {canonical} <- {', '.join(merged)}")
        reporter.info(f"Ranking metric: {metric}")
        reporter.info(
            f"Collection: {'single pass' if single_pass else f'per author, {workers} worker(s)'}"
        )
        reporter.info("Outputs:")
        for output_format in output_formats:
            if output_format == "chart":
                reporter.info(f"  ✓ {os.path.join(output_dir, 'chart_data.json')}")
            elif output_format == "csv":
                reporter.info(f"  ✓ {os.path.join(output_dir, 'contributors.csv')}")
            else:
                reporter.info(f"  ✓ {output_format} (stdout)")
        return

    reader = GitHistoryReader(repo_path, branch, since=since, until=until, timeout=timeout)

    try:
        if single_pass:
            context = collect_from_log(reader, aliases, reporter=reporter)
        else:
            context = collect_statistics(
                reader, aliases, max_workers=workers, reporter=reporter
            )
    except HistoryQueryError:
        sys.exit(1)

    if context.is_empty:
        reporter.warning(
            f"No commits on {branch} between {since or 'the beginning'} and {until or 'now'}"
        )
    if context.invalid_dates:
        reporter.warning(
            "Left out of activity series (not a calendar date): "
            + ", ".join(repr(day) for day in sorted(context.invalid_dates))
        )

    report = rank(context.stats, metric)
    written = []

    try:
        for output_format in output_formats:
            if output_format == "table":
                click.echo(render_table(report, branch))
            elif output_format == "graph":
                click.echo(
                    render_activity_graphs(context, report, metric, graph_height)
                )
            elif output_format == "chart":
                payload = build_chart_payload(report, context, branch, since, until)
                written.append(
                    write_json(payload, os.path.join(output_dir, "chart_data.json"))
                )
            elif output_format == "csv":
                written.append(
                    export_csv(report, os.path.join(output_dir, "contributors.csv"))
                )
    except ReportOutputError as e:
        reporter.error(str(e))
        sys.exit(1)

    for path in written:
        reporter.success(f"Wrote {path}")

    if context.skipped:
        reporter.warning(
            "Skipped identities after failed queries: "
            + ", ".join(author for author, _ in context.skipped)
        )

    summary_stats = {
        "Repository": repo_path,
        "Branch": branch,
        "Contributors": f"{len(report.entries):,}",
        "Total commits": f"{report.totals.commits:,}",
        "Lines changed": f"{report.totals.lines_changed:,}",
    }
    if written:
        summary_stats["Files written"] = ", ".join(written)
    reporter.summary(summary_stats)


if __name__ == "__main__":
    main()
