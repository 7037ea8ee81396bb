from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping


APP_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")
SECRET_KEY_RE = re.compile(r"(PASSWORD|SECRET|TOKEN|API_KEY)$")
INSECURE_SENTINELS = ("change_me", "CHANGE_ME")

BOOLEAN_KEYS = ("DRY_RUN", "VERBOSE", "GIT_SAFETY", "ALLOW_DIRTY", "NON_INTERACTIVE")

_CHOICES: Dict[str, tuple] = {
    "LOG_FORMAT": ("plain", "json"),
    "BOOTSTRAP_RESUME_MODE": ("skip", "rerun"),
    "EXEC_BACKEND": ("local", "container"),
}


@dataclass
class ConfigReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def insecure_keys(values: Mapping[str, str]) -> List[str]:
    return sorted(
        k for k, v in values.items() if SECRET_KEY_RE.search(k) and str(v).strip() in INSECURE_SENTINELS
    )


def validate_config(values: Mapping[str, str]) -> ConfigReport:
    """Check resolved values. Errors are fatal for the caller, warnings are not."""
    report = ConfigReport()

    for key in BOOLEAN_KEYS:
        v = values.get(key)
        if v is not None and v not in ("true", "false"):
            report.errors.append(f"{key} must be 'true' or 'false', got '{v}'")
    for key, value in values.items():
        if key.startswith("ENABLE_") and value not in ("true", "false", ""):
            report.errors.append(f"{key} must be 'true' or 'false', got '{value}'")

    for key, allowed in _CHOICES.items():
        v = values.get(key)
        if v is not None and v not in allowed:
            report.errors.append(f"{key} must be one of {'|'.join(allowed)}, got '{v}'")

    raw_timeout = values.get("MAX_CMD_SECONDS")
    if raw_timeout is not None:
        if not (raw_timeout.isascii() and raw_timeout.isdigit()):
            report.errors.append(f"MAX_CMD_SECONDS must be a non-negative integer, got '{raw_timeout}'")
        elif 0 < int(raw_timeout) < 60:
            report.warnings.append(f"MAX_CMD_SECONDS is very short ({raw_timeout}s); units may time out")

    app_name = values.get("APP_NAME")
    if app_name and not APP_NAME_RE.match(app_name):
        report.errors.append(
            f"APP_NAME '{app_name}' must start with a letter and contain only letters, digits, '-' or '_'"
        )

    db_port = values.get("DB_PORT")
    if db_port:
        if not (db_port.isascii() and db_port.isdigit()) or not 1 <= int(db_port) <= 65535:
            report.errors.append(f"DB_PORT must be between 1 and 65535, got '{db_port}'")

    for key in ("RESET_GENERATED_PATHS", "RESET_BACKUP_PATHS"):
        for pattern in (values.get(key) or "").replace(";", ",").split(","):
            if pattern.strip().startswith(("/", "~")):
                report.errors.append(f"{key} entries must be relative to INSTALL_DIR, got '{pattern.strip()}'")

    if values.get("ENABLE_PDF_EXPORTS") == "true" and values.get("ENABLE_SHADCN") == "false":
        report.warnings.append("ENABLE_PDF_EXPORTS works best with ENABLE_SHADCN enabled")

    return report
