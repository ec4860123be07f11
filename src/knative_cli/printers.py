"""Rendering of cluster objects as tables, describe output, JSON and YAML."""
from __future__ import annotations

import io
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO

import yaml
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .errors import FormatError
from .refs import PrefixTable, split_group_version
from .utils import nested_get

# width at which compact describe values are cut off
TRUNCATE_AT = 100

LIST_FORMATS = ("json", "yaml", "name")
DESCRIBE_FORMATS = ("json", "yaml", "name", "url")

UNKNOWN = "<unknown>"

# annotation/label domains hidden from compact describe output
BORING_DOMAINS = {"serving.knative.dev", "client.knative.dev", "kubectl.kubernetes.io"}


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp; unset and zero (year 1) timestamps give ``None``."""

    if not value:
        return None
    try:
        parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if not parsed.tzinfo:
            parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed.year <= 1:
        return None
    return parsed


def human_duration(seconds: float) -> str:
    """Approximate duration as printed by kubectl (``5m``, ``3h12m``, ``4d``)."""

    if seconds < -1:
        return "<invalid>"
    if seconds < 0:
        return "0s"
    seconds = int(seconds)
    minutes = seconds // 60
    hours = seconds // 3600
    if seconds < 60 * 2:
        return f"{seconds}s"
    if minutes < 10:
        rest = seconds % 60
        return f"{minutes}m{rest}s" if rest else f"{minutes}m"
    if minutes < 60 * 3:
        return f"{minutes}m"
    if hours < 8:
        rest = minutes % 60
        return f"{hours}h{rest}m" if rest else f"{hours}h"
    if hours < 48:
        return f"{hours}h"
    days = hours // 24
    if hours < 24 * 8:
        rest = hours % 24
        return f"{days}d{rest}h" if rest else f"{days}d"
    if hours < 24 * 365 * 2:
        return f"{days}d"
    years = days // 365
    if hours < 24 * 365 * 8:
        rest = days % 365
        return f"{years}y{rest}d" if rest else f"{years}y"
    return f"{years}y"


def _seconds_since(timestamp: datetime, now: Optional[datetime]) -> float:
    reference = now or datetime.now(timezone.utc)
    return (reference - timestamp).total_seconds()


def translate_timestamp_since(value: Optional[str], now: Optional[datetime] = None) -> str:
    """Age column value: ``<unknown>`` for an unset timestamp."""

    timestamp = parse_timestamp(value)
    if timestamp is None:
        return UNKNOWN
    return human_duration(_seconds_since(timestamp, now))


def age(value: Optional[str], now: Optional[datetime] = None) -> str:
    """Age used in describe output: empty for an unset timestamp."""

    timestamp = parse_timestamp(value)
    if timestamp is None:
        return ""
    return human_duration(_seconds_since(timestamp, now))


def conditions_of(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    conditions = nested_get(document, "status", "conditions", default=[])
    return [entry for entry in conditions if isinstance(entry, dict)]


def ready_condition(conditions: Sequence[Dict[str, Any]]) -> str:
    for condition in conditions:
        if condition.get("type") == "Ready":
            return str(condition.get("status", ""))
    return UNKNOWN


def non_ready_reason(conditions: Sequence[Dict[str, Any]]) -> str:
    for condition in conditions:
        if condition.get("type") == "Ready":
            if condition.get("status") == "True":
                return ""
            reason = condition.get("reason") or ""
            message = condition.get("message") or ""
            if message:
                return f"{reason} : {message}"
            return reason
    return UNKNOWN


def conditions_value(conditions: Sequence[Dict[str, Any]]) -> str:
    ok = sum(1 for condition in conditions if condition.get("status") == "True")
    return f"{ok} OK / {len(conditions)}"


_SEVERITY_RANK = {"": 0, "Error": 0, "Warning": 1, "Info": 2}


def sort_conditions(conditions: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Ready first, then error/default severity, warnings, infos; by type within."""

    def key(condition: Dict[str, Any]) -> tuple:
        if condition.get("type") == "Ready":
            return (0, 0, "")
        severity = _SEVERITY_RANK.get(condition.get("severity") or "", 0)
        return (1, severity, condition.get("type") or "")

    return sorted(conditions, key=key)


def format_status(condition: Dict[str, Any]) -> str:
    status = condition.get("status")
    if status == "True":
        return "++"
    if status == "False":
        # an empty severity is the default, which is Error
        severity = condition.get("severity") or ""
        if severity in ("", "Error"):
            return "!!"
        if severity == "Warning":
            return " W"
        if severity == "Info":
            return " I"
        return " !"
    if condition.get("type") == "Ready":
        return " "
    return "??"


def sort_items(items: List[Dict[str, Any]], all_namespaces: bool) -> List[Dict[str, Any]]:
    """Order list items for table output.

    In one namespace items are sorted by name. Across namespaces, items of the
    ``default`` namespace come first in their original order, followed by the
    rest sorted by namespace and name.
    """

    def name_of(item: Dict[str, Any]) -> str:
        return nested_get(item, "metadata", "name", default="")

    def namespace_of(item: Dict[str, Any]) -> str:
        return nested_get(item, "metadata", "namespace", default="")

    if not all_namespaces:
        return sorted(items, key=name_of)
    defaults = [item for item in items if namespace_of(item) == "default"]
    others = [item for item in items if namespace_of(item) != "default"]
    others.sort(key=lambda item: (namespace_of(item), name_of(item)))
    return defaults + others


@dataclass
class PrintOptions:
    output: Optional[str] = None
    no_headers: bool = False
    all_namespaces: bool = False
    current_namespace: str = ""
    details: bool = False
    prefixes: PrefixTable = field(default_factory=PrefixTable.default)


class Printable:
    """Per resource column set and describe layout."""

    kind = ""
    columns: Sequence[str] = ("Name", "Age", "Ready", "Reason")

    def row(self, item: Dict[str, Any], options: PrintOptions) -> List[str]:
        conditions = conditions_of(item)
        return [
            nested_get(item, "metadata", "name", default=""),
            translate_timestamp_since(nested_get(item, "metadata", "creationTimestamp")),
            ready_condition(conditions),
            non_ready_reason(conditions),
        ]

    def describe(self, item: Dict[str, Any], writer: "DescribeWriter", options: PrintOptions) -> None:
        writer.write_metadata(item, options.details)
        writer.write_conditions(conditions_of(item), options.details)

    def url(self, item: Dict[str, Any]) -> Optional[str]:
        return nested_get(item, "status", "address", "url") or nested_get(item, "status", "url")


def _key_is_boring(key: str) -> bool:
    parts = key.split("/")
    return len(parts) > 1 and parts[0] in BORING_DOMAINS


def join_and_truncate(sorted_keys: Sequence[str], values: Dict[str, str], width: int) -> str:
    text = ""
    for key in sorted_keys:
        text += f"{key}={values[key]}, "
        if len(text) > width:
            break
    text = text.rstrip(", ")
    if len(text) <= width:
        return text
    return text[: width - 4] + " ..."


class DescribeWriter:
    """Writes aligned ``Label:  value`` lines with nested sections."""

    LABEL_WIDTH = 14

    def __init__(self, stream: TextIO, indent: int = 0) -> None:
        self.stream = stream
        self.indent = indent

    def _prefix(self) -> str:
        return "  " * self.indent

    def write_line(self, text: str = "") -> None:
        self.stream.write(f"{self._prefix()}{text}".rstrip() + "\n")

    def write_attribute(self, label: str, value: Any = "") -> "DescribeWriter":
        heading = f"{label}:"
        if value in (None, ""):
            self.write_line(heading)
        else:
            self.write_line(f"{heading:<{self.LABEL_WIDTH}}{value}")
        return DescribeWriter(self.stream, self.indent + 1)

    def write_cols(self, label: str, value: str) -> None:
        heading = f"{label}:" if label else ""
        self.write_line(f"{heading:<{self.LABEL_WIDTH}}{value}")

    def write_map(self, values: Optional[Dict[str, str]], label: str, details: bool) -> None:
        if not values:
            return
        keys = sorted(key for key in values if details or not _key_is_boring(key))
        if not keys:
            return
        if details:
            for index, key in enumerate(keys):
                self.write_cols(label if index == 0 else "", f"{key}={values[key]}")
            return
        self.write_cols(label, join_and_truncate(keys, values, TRUNCATE_AT - len(label) - 2))

    def write_slice(self, values: Optional[Sequence[str]], label: str, details: bool) -> None:
        if not values:
            return
        if details:
            for index, value in enumerate(values):
                self.write_cols(label if index == 0 else "", value)
            return
        joined = ", ".join(values)
        if len(joined) > TRUNCATE_AT:
            joined = joined[: TRUNCATE_AT - 4] + " ..."
        self.write_attribute(label, joined)

    def write_metadata(self, item: Dict[str, Any], details: bool) -> None:
        metadata = item.get("metadata") or {}
        self.write_attribute("Name", metadata.get("name", ""))
        self.write_attribute("Namespace", metadata.get("namespace", ""))
        self.write_map(metadata.get("labels"), "Labels", details)
        self.write_map(metadata.get("annotations"), "Annotations", details)
        self.write_attribute("Age", age(metadata.get("creationTimestamp")))

    def write_sink(self, label: str, destination: Optional[Dict[str, Any]]) -> None:
        if not destination:
            return
        section = self.write_attribute(label)
        ref = destination.get("ref")
        if ref:
            section.write_attribute("Name", ref.get("name", ""))
            if ref.get("namespace"):
                section.write_attribute("Namespace", ref.get("namespace"))
            section.write_attribute("Resource", f"{ref.get('kind', '')} ({ref.get('apiVersion', '')})")
        if destination.get("uri"):
            section.write_attribute("URI", destination["uri"])

    def write_ce_overrides(self, extensions: Optional[Dict[str, str]]) -> None:
        if not extensions:
            return
        self.write_line()
        section = self.write_attribute("CloudEvent Overrides")
        for key in sorted(extensions):
            section.write_attribute(key, extensions[key])

    def write_conditions(self, conditions: Sequence[Dict[str, Any]], details: bool) -> None:
        self.write_line()
        section = self.write_attribute("Conditions")
        ordered = sort_conditions(conditions)
        width = max([len("TYPE")] + [len(c.get("type") or "") for c in ordered])
        section.write_line(f"{'OK':<2} {'TYPE':<{width}} {'AGE':>6} REASON")
        for condition in ordered:
            reason = condition.get("reason") or ""
            if details and reason:
                reason = f"{reason} ({condition.get('message') or ''})"
            section.write_line(
                f"{format_status(condition):<2} {condition.get('type', ''):<{width}} "
                f"{age(condition.get('lastTransitionTime')):>6} {reason}"
            )


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]], stream: TextIO, no_headers: bool = False) -> None:
    """Write a borderless, left aligned table with upper case headers."""

    table = Table(box=None, show_header=not no_headers, pad_edge=False, padding=(0, 3, 0, 0), header_style=None)
    for header in headers:
        table.add_column(Text(header.upper()), no_wrap=True)
    for row in rows:
        table.add_row(*(Text(str(cell)) for cell in row))
    widths = [len(header) for header in headers]
    for row in rows:
        widths = [max(width, len(str(cell))) for width, cell in zip(widths, row)]
    buffer = io.StringIO()
    console = Console(file=buffer, width=max(80, sum(widths) + 3 * len(widths) + 1), highlight=False, color_system=None)
    console.print(table)
    for line in buffer.getvalue().splitlines():
        stream.write(line.rstrip() + "\n")


class Printer:
    """Prints single objects and lists in the requested output format."""

    def __init__(self, printable: Printable, options: PrintOptions) -> None:
        self.printable = printable
        self.options = options

    @staticmethod
    def validate_format(output: Optional[str], allowed: Sequence[str] = LIST_FORMATS) -> None:
        if output and output.lower() not in allowed:
            raise FormatError(
                f"unable to match a printer suitable for the output format \"{output}\", "
                f"allowed formats are: {','.join(allowed)}"
            )

    def print_list(self, document: Dict[str, Any], stream: TextIO) -> None:
        output = (self.options.output or "").lower()
        self.validate_format(output, LIST_FORMATS)
        items = list(document.get("items") or [])
        if output in ("json", "yaml"):
            self._dump(self._typed_list(document, items), output, stream)
            return
        if output == "name":
            for item in items:
                stream.write(self._name_of(item) + "\n")
            return
        headers = list(self.printable.columns)
        if self.options.all_namespaces:
            headers.insert(0, "Namespace")
        rows = []
        for item in sort_items(items, self.options.all_namespaces):
            row = self.printable.row(item, self.options)
            if self.options.all_namespaces:
                row.insert(0, nested_get(item, "metadata", "namespace", default=""))
            rows.append(row)
        render_table(headers, rows, stream, self.options.no_headers)

    def print_object(self, item: Dict[str, Any], stream: TextIO) -> None:
        output = (self.options.output or "").lower()
        self.validate_format(output, DESCRIBE_FORMATS)
        if output in ("json", "yaml"):
            self._dump(item, output, stream)
        elif output == "name":
            stream.write(self._name_of(item) + "\n")
        elif output == "url":
            stream.write((self.printable.url(item) or "") + "\n")
        else:
            self.printable.describe(item, DescribeWriter(stream), self.options)

    def _typed_list(self, document: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        kind = document.get("kind") or f"{self.printable.kind}List"
        api_version = document.get("apiVersion", "")
        item_kind = kind[: -len("List")] if kind.endswith("List") else kind
        typed_items = []
        for item in items:
            typed = dict(item)
            typed.setdefault("apiVersion", api_version)
            typed.setdefault("kind", item_kind)
            typed_items.append(typed)
        result = {"apiVersion": api_version, "kind": kind, "metadata": document.get("metadata") or {}, "items": typed_items}
        return result

    @staticmethod
    def _name_of(item: Dict[str, Any]) -> str:
        kind = (item.get("kind") or "").lower()
        try:
            group, _ = split_group_version(item.get("apiVersion") or "")
        except ValueError:
            group = ""
        qualified = f"{kind}.{group}" if group else kind
        return f"{qualified}/{nested_get(item, 'metadata', 'name', default='')}"

    @staticmethod
    def _dump(document: Dict[str, Any], output: str, stream: TextIO) -> None:
        if output == "json":
            stream.write(json.dumps(document, indent=4) + "\n")
        else:
            yaml.safe_dump(document, stream, sort_keys=False)
