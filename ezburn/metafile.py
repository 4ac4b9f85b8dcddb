"""Metafile validation and the size/percentage report used by ``analyze_metafile``."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, Field, StrictInt, ValidationError

from .errors import ConfigurationError

KILOBYTE = 1024
_OUTPUT_PREFIX = "  "
_INPUT_PREFIX = "   └ "
_COLUMN_GAP = "  "


class InputContribution(BaseModel):
    """Bytes one input contributed to one output."""

    bytes_in_output: StrictInt = Field(alias="bytesInOutput", ge=0)

    model_config = {"frozen": True, "extra": "ignore"}


class OutputEntry(BaseModel):
    """One output file and the inputs that contributed to it."""

    size: StrictInt = Field(alias="bytes", ge=0)
    inputs: Dict[str, InputContribution]

    model_config = {"frozen": True, "extra": "ignore"}


class Metafile(BaseModel):
    """The part of a build metafile the report reads. Extra keys are ignored."""

    outputs: Dict[str, OutputEntry]

    model_config = {"frozen": True, "extra": "ignore"}


@dataclass(frozen=True)
class ReportRow:
    label: str
    size: str
    percent: str


def parse_metafile(metafile: Mapping[str, Any] | str | Metafile) -> Metafile:
    """Validate a metafile mapping or JSON document, raising ConfigurationError."""
    if isinstance(metafile, Metafile):
        return metafile
    if isinstance(metafile, str):
        try:
            metafile = json.loads(metafile)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Metafile is not valid JSON: {exc}") from exc
    if not isinstance(metafile, Mapping):
        raise ConfigurationError("Metafile must be a mapping with an \"outputs\" key")
    try:
        return Metafile.model_validate(dict(metafile))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid metafile: {exc}") from exc


def format_size(num_bytes: int) -> str:
    """Render bytes as ``"{n}b"`` below 1024 and as one-decimal kilobytes otherwise."""
    if num_bytes < KILOBYTE:
        return f"{num_bytes}b"
    return f"{_round_tenths(num_bytes * 10, KILOBYTE)}kb"


def format_percent(part: int, whole: int) -> str:
    """Render ``100 * part / whole`` with one decimal, rounding halves up."""
    if whole <= 0:
        raise ConfigurationError("Cannot compute a percentage of a zero-byte output")
    return f"{_round_tenths(part * 1000, whole)}%"


def _round_tenths(numerator: int, denominator: int) -> str:
    # numerator / denominator is the value expressed in tenths
    tenths, remainder = divmod(numerator, denominator)
    if remainder * 2 >= denominator:
        tenths += 1
    return f"{tenths // 10}.{tenths % 10}"


def build_report(metafile: Mapping[str, Any] | str | Metafile) -> List[List[ReportRow]]:
    """Return one group of rows per output: the output row then its input rows."""
    parsed = parse_metafile(metafile)
    groups: List[List[ReportRow]] = []
    for output_name, output in parsed.outputs.items():
        if output.size == 0 and output.inputs:
            raise ConfigurationError(f'Output "{output_name}" has zero bytes but lists inputs')
        rows = [ReportRow(f"{_OUTPUT_PREFIX}{output_name}", format_size(output.size), "100.0%")]
        for input_name, contribution in output.inputs.items():
            rows.append(
                ReportRow(
                    f"{_INPUT_PREFIX}{input_name}",
                    format_size(contribution.bytes_in_output),
                    format_percent(contribution.bytes_in_output, output.size),
                )
            )
        groups.append(rows)
    return groups


def analyze_metafile(metafile: Mapping[str, Any] | str | Metafile) -> str:
    """Render the aligned size report for every output in the metafile."""
    groups = build_report(metafile)
    rows = [row for group in groups for row in group]
    if not rows:
        return "\n"

    label_width = max(len(row.label) for row in rows)
    size_width = max(len(row.size) for row in rows)
    percent_width = max(len(row.percent) for row in rows)

    def _render(row: ReportRow) -> str:
        return (
            row.label.ljust(label_width)
            + _COLUMN_GAP
            + row.size.rjust(size_width)
            + _COLUMN_GAP
            + row.percent.rjust(percent_width)
        )

    blocks = ["\n".join(_render(row) for row in group) for group in groups]
    return "\n" + "\n\n".join(blocks) + "\n"


__all__ = [
    "InputContribution",
    "Metafile",
    "OutputEntry",
    "ReportRow",
    "analyze_metafile",
    "build_report",
    "format_percent",
    "format_size",
    "parse_metafile",
]
