from __future__ import annotations

import json
import re
from datetime import datetime

from pydantic import ValidationError

from domain.errors import ParseError
from domain.models import AccessLogRecord, JsonDocument, Record

SUPPORTED_FORMATS = ("clf", "jsonl")

_QUOTED = r'"(?P<{name}>(?:[^"\\]|\\.)*)"'

CLF_PATTERN = (
    r"^(?P<remote_addr>\S+) (?P<ident>\S+) (?P<remote_user>\S+) "
    r"\[(?P<time_local>[^\]]+)\] "
    + _QUOTED.format(name="request")
    + r" (?P<status>\d{3}) (?P<body_bytes_sent>\d+|-)"
    r"(?: "
    + _QUOTED.format(name="http_referer")
    + " "
    + _QUOTED.format(name="http_user_agent")
    + r")?\s*$"
)

CLF_RE = re.compile(CLF_PATTERN)
REQUEST_RE = re.compile(r"^(?P<method>[A-Z]+)\s+(?P<path>\S+)(?:\s+(?P<protocol>HTTP/[0-9.]+))?$")


class LogParser:
    def __init__(self, fmt: str = "clf") -> None:
        fmt = fmt.lower()
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported format: {fmt}")
        self.fmt = fmt

    def parse_line(self, line: str) -> Record:
        if self.fmt == "jsonl":
            return self.parse_json_line(line)
        return self.parse_access_line(line)

    def parse_access_line(self, line: str) -> AccessLogRecord:
        match = CLF_RE.match(line.strip())
        if not match:
            raise ParseError(line)
        data = match.groupdict()
        method, path, protocol = _parse_request_line(data["request"])
        payload = {
            "remote_addr": data["remote_addr"],
            "ident": _clean_dash(data["ident"]),
            "remote_user": _clean_dash(data["remote_user"]),
            "time_local": data["time_local"],
            "timestamp": _parse_clf_time(data["time_local"]),
            "request": data["request"],
            "method": method,
            "path": path,
            "protocol": protocol,
            "status": int(data["status"]),
            "body_bytes_sent": _parse_int(data["body_bytes_sent"]),
            "http_referer": _clean_dash(data.get("http_referer")),
            "http_user_agent": _clean_dash(data.get("http_user_agent")),
        }
        try:
            return AccessLogRecord.model_validate(payload)
        except ValidationError as exc:
            raise ParseError(line, reason=f"invalid field values ({exc.error_count()} errors)") from exc

    def parse_json_line(self, line: str) -> JsonDocument:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ParseError(line, reason=f"invalid JSON ({exc.msg})") from exc
        if not isinstance(payload, dict):
            raise ParseError(line, reason="JSON document is not an object")
        try:
            return JsonDocument.model_validate(payload)
        except ValidationError as exc:
            raise ParseError(line, reason=f"invalid document ({exc.error_count()} errors)") from exc


def _parse_clf_time(value: str) -> datetime | None:
    try:
        return datetime.strptime(value, "%d/%b/%Y:%H:%M:%S %z")
    except ValueError:
        return None


def _parse_request_line(request: str) -> tuple[str | None, str | None, str | None]:
    if not request or request == "-":
        return None, None, None
    match = REQUEST_RE.match(request)
    if not match:
        return None, None, None
    return match.group("method"), match.group("path"), match.group("protocol")


def _parse_int(value: str | None) -> int | None:
    if value is None or value in ("", "-"):
        return None
    return int(value)


def _clean_dash(value: str | None) -> str | None:
    if value is None or value in ("", "-"):
        return None
    return value
