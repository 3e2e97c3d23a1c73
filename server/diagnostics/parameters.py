"""
Report parameters.

Every report declares its inputs as ``Parameter`` objects. Resolution never
raises: a blank value means "use the default", an invalid value is replaced
with the fallback and a warning is returned so the caller can print it and
carry on, the same way an interactive SQL*Plus ACCEPT prompt would.
"""

import re
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()

MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

# DD-MON-YYYY with optional HH24:MI:SS
DATE_PATTERN = re.compile(
    r"^(0[1-9]|[12][0-9]|3[01])-(JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC)-([0-9]{4})"
    r"( (0[0-9]|1[0-9]|2[0-3]):([0-5][0-9]):([0-5][0-9]))?$"
)


def is_valid_oracle_date(text: str) -> bool:
    if text is None:
        return False
    m = DATE_PATTERN.match(text.strip().upper())
    if not m:
        return False
    try:
        parse_oracle_date(text)
    except ValueError:
        return False
    return True


def parse_oracle_date(text: str, end_of_day: bool = False) -> datetime:
    """
    Parse ``DD-MON-YYYY[ HH24:MI:SS]`` into a datetime.

    A date-only value is midnight, or 23:59:59 when ``end_of_day`` is set so
    an end date covers the whole day.
    """
    m = DATE_PATTERN.match((text or "").strip().upper())
    if not m:
        raise ValueError(f"'{text}' is not in DD-MON-YYYY [HH24:MI:SS] format")

    day, month, year = int(m.group(1)), MONTHS[m.group(2)], int(m.group(3))
    value = datetime(year, month, day)  # raises on 31-FEB etc.

    if m.group(4):
        return value.replace(hour=int(m.group(5)), minute=int(m.group(6)), second=int(m.group(7)))
    if end_of_day:
        return value + timedelta(days=1, seconds=-1)
    return value


@dataclass
class Parameter:
    """A named report input with a default and a light validation rule."""

    name: str
    label: str
    default: Any
    kind: str = "text"  # text | int | date | choice
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    choices: Optional[Dict[int, str]] = None
    upper: bool = False
    fallback: Any = _MISSING

    @property
    def fallback_value(self):
        return self.default if self.fallback is _MISSING else self.fallback

    def describe(self) -> Dict[str, Any]:
        info = {"name": self.name, "label": self.label, "type": self.kind, "default": self.default}
        if self.minimum is not None or self.maximum is not None:
            info["range"] = [self.minimum, self.maximum]
        if self.choices:
            info["choices"] = {str(k): v for k, v in self.choices.items()}
        return info

    def resolve(self, raw) -> Tuple[Any, Optional[str]]:
        if raw is None or (isinstance(raw, str) and raw.strip() == ""):
            return self.default, None

        if self.kind in ("int", "choice"):
            try:
                value = int(str(raw).strip())
            except ValueError:
                return self._invalid(raw, "is not a number")

            if self.kind == "choice" and self.choices and value not in self.choices:
                return self._invalid(raw, f"is not one of {sorted(self.choices)}")
            if self.minimum is not None and value < self.minimum:
                return self._invalid(raw, f"is below the minimum of {self.minimum}")
            if self.maximum is not None and value > self.maximum:
                return self._invalid(raw, f"is above the maximum of {self.maximum}")
            return value, None

        text = str(raw).strip()
        if self.upper or self.kind == "date":
            text = text.upper()

        if self.kind == "date" and not is_valid_oracle_date(text):
            return self._invalid(raw, "is not a valid DD-MON-YYYY [HH24:MI:SS] date")

        return text, None

    def _invalid(self, raw, reason: str) -> Tuple[Any, str]:
        value = self.fallback_value
        msg = f"{self.label} '{raw}' {reason}; using {value!r}"
        logger.warning(f"⚠ {msg}")
        return value, msg


def resolve_parameters(
    parameters: List[Parameter],
    raw: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Resolve raw user input against parameter declarations.

    ``overrides`` replace declared defaults (configured per report in
    settings.yaml) before user input is applied.

    Returns:
        (values, warnings)
    """
    raw = dict(raw or {})
    overrides = overrides or {}
    values: Dict[str, Any] = {}
    warnings: List[str] = []

    for param in parameters:
        if param.name in overrides:
            base, msg = param.resolve(overrides[param.name])
            if msg:
                warnings.append(f"settings.yaml default ignored: {msg}")
                base = param.default
        else:
            base = param.default

        given = raw.pop(param.name, None)
        if given is None or (isinstance(given, str) and not given.strip()):
            values[param.name] = base
            continue

        value, msg = param.resolve(given)
        values[param.name] = value
        if msg:
            warnings.append(msg)

    for unknown in sorted(raw):
        msg = f"Unknown parameter '{unknown}' ignored"
        logger.warning(f"⚠ {msg}")
        warnings.append(msg)

    return values, warnings
