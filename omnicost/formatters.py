"""
Text formatters for normalized cost records.

Every formatter renders the same columns (Date, Service, Amount, Currency,
Region) with amounts to two decimal places. Empty input renders as an empty
string in every format.
"""
from typing import Dict, Sequence, Type

from .constants import FORMAT_CSV, FORMAT_MARKDOWN, FORMAT_TSV, OUTPUT_COLUMNS
from .errors import ValidationError
from .models import CostRecord


def _row(record: CostRecord) -> list:
    return [
        record.date,
        record.service,
        f"{record.amount:.2f}",
        record.currency,
        record.region or "",
    ]


class Formatter:
    """Base class: render a list of records to a single string."""

    def format(self, records: Sequence[CostRecord]) -> str:
        raise NotImplementedError


class TSVFormatter(Formatter):
    """Tab-separated values. Fields are written as-is."""

    def format(self, records: Sequence[CostRecord]) -> str:
        if not records:
            return ""
        lines = ["\t".join(OUTPUT_COLUMNS)]
        lines.extend("\t".join(_row(record)) for record in records)
        return "\n".join(lines)


class CSVFormatter(Formatter):
    """Comma-separated values. The service column is always quoted."""

    def format(self, records: Sequence[CostRecord]) -> str:
        if not records:
            return ""
        lines = [",".join(OUTPUT_COLUMNS)]
        for record in records:
            fields = _row(record)
            fields[1] = '"{}"'.format(fields[1].replace('"', '""'))
            lines.append(",".join(fields))
        return "\n".join(lines)


class MarkdownFormatter(Formatter):
    """GitHub-flavoured Markdown table."""

    def format(self, records: Sequence[CostRecord]) -> str:
        if not records:
            return ""
        header = "| " + " | ".join(OUTPUT_COLUMNS) + " |"
        separator = "|" + "|".join("-" * (len(column) + 2) for column in OUTPUT_COLUMNS) + "|"
        lines = [header, separator]
        lines.extend("| " + " | ".join(_row(record)) + " |" for record in records)
        return "\n".join(lines)


FORMATTERS: Dict[str, Type[Formatter]] = {
    FORMAT_TSV: TSVFormatter,
    FORMAT_CSV: CSVFormatter,
    FORMAT_MARKDOWN: MarkdownFormatter,
}


def get_formatter(output_format: str) -> Formatter:
    """Return the formatter for `output_format` (tsv, csv, markdown)."""
    try:
        return FORMATTERS[output_format]()
    except KeyError:
        raise ValidationError(f"Unsupported format: {output_format}") from None


def format_cost_data(records: Sequence[CostRecord], output_format: str) -> str:
    """Render `records` in `output_format`."""
    return get_formatter(output_format).format(records)
