from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from bootforge.core.config.models import TRUE_VALUES, ExecutionContext
from bootforge.core.config.validate import insecure_keys, validate_config
from bootforge.core.profiles.registry import ProfileRegistry
from bootforge.core.profiles.resolver import resolve_toggles
from bootforge.core.safety.git_gate import git_toplevel
from bootforge.errors import CatalogError, PreconditionError


_log = logging.getLogger("bootforge.config")

CONFIG_NAME = "bootforge.conf"
TEMPLATE_PATH = Path(__file__).resolve().parents[2] / "templates" / "bootforge.conf.example"

# Keys the environment may override even when the config file omits them.
OPERATIONAL_KEYS = (
    "DRY_RUN",
    "VERBOSE",
    "LOG_FORMAT",
    "MAX_CMD_SECONDS",
    "BOOTSTRAP_RESUME_MODE",
    "GIT_SAFETY",
    "ALLOW_DIRTY",
    "STACK_PROFILE",
    "NON_INTERACTIVE",
)

DEFAULTS: Dict[str, str] = {
    "DRY_RUN": "false",
    "LOG_FORMAT": "plain",
    "MAX_CMD_SECONDS": "900",
    "BOOTSTRAP_RESUME_MODE": "skip",
    "GIT_SAFETY": "true",
    "ALLOW_DIRTY": "false",
    "STACK_PROFILE": "full",
}

# Derived locations, applied like defaults.
PATH_DEFAULTS: Dict[str, str] = {
    "INSTALL_DIR": ".",
    "UNITS_DIR": "units",
    "ENGINE_DIR": "_build/bootforge",
    "BOOTSTRAP_STATE_FILE": ".bootforge_state",
    "EXEC_BACKEND": "local",
    "VERBOSE": "false",
    "NON_INTERACTIVE": "false",
}

# First-run prompts: (key, question)
PROMPTED_KEYS: Tuple[Tuple[str, str], ...] = (
    ("APP_NAME", "Application name"),
    ("INSTALL_DIR", "Install directory (relative to the project root)"),
    ("DB_NAME", "Database name"),
    ("DB_USER", "Database user"),
    ("DB_PASSWORD", "Database password"),
)

_LINE_RE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")
_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


# ---------------------------------------------------------------------
# Flat KEY="value" file
# ---------------------------------------------------------------------

def _strip_value(raw: str) -> Tuple[str, bool]:
    """Return (value, expand) for the right-hand side of an assignment."""
    raw = raw.strip()
    if raw[:1] in ('"', "'"):
        quote = raw[0]
        end = raw.find(quote, 1)
        if end == -1:
            raise ValueError("unterminated quote")
        return raw[1:end], quote == '"'
    if " #" in raw:
        raw = raw.split(" #", 1)[0].rstrip()
    return raw, True


def parse_config_text(
    text: str,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[Dict[str, str], List[str]]:
    env = os.environ if environ is None else environ
    values: Dict[str, str] = {}
    warnings: List[str] = []

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        m = _LINE_RE.match(line)
        if not m:
            warnings.append(f"line {lineno}: not a KEY=value assignment, ignored")
            continue
        key, rhs = m.group(1), m.group(2)
        try:
            value, expand = _strip_value(rhs)
        except ValueError as e:
            warnings.append(f"line {lineno}: {e}, ignored")
            continue
        if expand:
            value = _VAR_RE.sub(lambda mm: values.get(mm.group(1), env.get(mm.group(1), "")), value)
        values[key] = value
    return values, warnings


def substitute_value(text: str, key: str, value: str) -> str:
    """Rewrite the single ``KEY=...`` line, appending it when absent."""
    pattern = re.compile(rf"^{re.escape(key)}=.*$", re.MULTILINE)
    replacement = f'{key}="{value}"'
    if pattern.search(text):
        return pattern.sub(lambda _m: replacement, text, count=1)
    if text and not text.endswith("\n"):
        text += "\n"
    return text + replacement + "\n"


def _truthy(v: Optional[str]) -> bool:
    return (v or "").strip().lower() in TRUE_VALUES


# ---------------------------------------------------------------------
# Project root detection
# ---------------------------------------------------------------------

def find_project_root(
    explicit: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> Path:
    """--root, then BOOTFORGE_ROOT, then nearest bootforge.conf, then git top-level, then cwd."""
    env = os.environ if environ is None else environ
    if explicit is not None:
        return explicit.resolve()
    if env.get("BOOTFORGE_ROOT"):
        return Path(env["BOOTFORGE_ROOT"]).resolve()

    start = (cwd or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if (candidate / CONFIG_NAME).is_file():
            return candidate

    top = git_toplevel(start)
    return top if top is not None else start


# ---------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------

class ConfigLoader:
    def __init__(
        self,
        project_root: Path,
        *,
        environ: Optional[Mapping[str, str]] = None,
        prompt: Callable[[str], str] = input,
        template_path: Path = TEMPLATE_PATH,
    ):
        self.project_root = project_root.resolve()
        self.environ = dict(os.environ if environ is None else environ)
        self.prompt = prompt
        self.template_path = template_path

    @property
    def config_path(self) -> Path:
        return self.project_root / CONFIG_NAME

    def materialize(self, interactive: bool) -> bool:
        """Create the config from the template. Returns False when it already exists."""
        if self.config_path.exists():
            return False
        if not self.template_path.is_file():
            raise PreconditionError(
                f"Config template missing: {self.template_path}",
                hint="Reinstall bootforge; the package ships its config template.",
            )
        self.project_root.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.template_path, self.config_path)
        _log.info("Created %s from template", self.config_path)

        if interactive:
            self._prompt_first_run()
        return True

    def _prompt_first_run(self) -> None:
        text = self.config_path.read_text(encoding="utf-8")
        defaults, _ = parse_config_text(text, self.environ)
        changed = False
        for key, question in PROMPTED_KEYS:
            current = defaults.get(key, "")
            try:
                answer = self.prompt(f"{question} [{current}]: ").strip()
            except EOFError:
                break
            if answer and answer != current:
                text = substitute_value(text, key, answer)
                changed = True
        if changed:
            self.config_path.write_text(text, encoding="utf-8")

    def read_values(self) -> Dict[str, str]:
        try:
            text = self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PreconditionError(f"Cannot read {self.config_path}: {e}") from e
        values, warnings = parse_config_text(text, self.environ)
        for w in warnings:
            _log.warning("%s %s", CONFIG_NAME, w)
        return values

    def _check_version(self, values: Mapping[str, str]) -> None:
        if not self.template_path.is_file():
            return
        template_values, _ = parse_config_text(self.template_path.read_text(encoding="utf-8"), {})
        want = template_values.get("CONFIG_VERSION", "")
        have = values.get("CONFIG_VERSION", "")
        if want.isdigit() and (not have.isdigit() or int(have) < int(want)):
            _log.warning(
                "%s is at CONFIG_VERSION=%s, template is at %s; compare with %s for new keys",
                CONFIG_NAME,
                have or "(unset)",
                want,
                self.template_path,
            )

    def resolve(self, overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        values = self.read_values()
        if values:
            self._check_version(values)

        for key in set(values) | set(OPERATIONAL_KEYS):
            if key in self.environ:
                values[key] = self.environ[key]

        values.update({k: v for k, v in (overrides or {}).items() if v is not None})

        for table in (DEFAULTS, PATH_DEFAULTS):
            for key, default in table.items():
                if not values.get(key):
                    values[key] = default

        values["PROJECT_ROOT"] = str(self.project_root)
        return values

    def _path(self, raw: str, base: Path) -> Path:
        p = Path(raw).expanduser()
        return p if p.is_absolute() else (base / p).resolve()

    def load(
        self,
        *,
        non_interactive: bool = False,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> ExecutionContext:
        non_interactive = (
            non_interactive
            or _truthy(self.environ.get("NON_INTERACTIVE"))
            or _truthy(self.environ.get("CI"))
        )
        self.materialize(interactive=not non_interactive)

        values = self.resolve(overrides)
        non_interactive = non_interactive or values.get("NON_INTERACTIVE") == "true"
        values["NON_INTERACTIVE"] = "true" if non_interactive else "false"

        report = validate_config(values)
        for w in report.warnings:
            _log.warning("Config: %s", w)
        if not report.ok:
            raise CatalogError(
                "Invalid configuration in " + CONFIG_NAME,
                hint="Fix the listed keys in bootforge.conf or the environment.",
                problems=report.errors,
            )

        insecure = insecure_keys(values)
        if insecure:
            if non_interactive:
                raise CatalogError(
                    "Refusing to run non-interactively with placeholder credentials: " + ", ".join(insecure),
                    hint="Set real values for these keys in bootforge.conf or the environment.",
                )
            _log.warning("Placeholder credentials still set: %s", ", ".join(insecure))

        toggles = resolve_toggles(values["STACK_PROFILE"], values, ProfileRegistry(self.project_root))

        return ExecutionContext(
            project_root=self.project_root,
            install_dir=self._path(values["INSTALL_DIR"], self.project_root),
            engine_dir=self._path(values["ENGINE_DIR"], self.project_root),
            units_dir=self._path(values["UNITS_DIR"], self.project_root),
            state_file=self._path(values["BOOTSTRAP_STATE_FILE"], self.project_root),
            config_file=self.config_path,
            dry_run=values["DRY_RUN"] == "true",
            verbose=values["VERBOSE"] == "true",
            non_interactive=non_interactive,
            stack_profile=values["STACK_PROFILE"],
            git_safety=values["GIT_SAFETY"] == "true",
            allow_dirty=values["ALLOW_DIRTY"] == "true",
            max_cmd_seconds=int(values["MAX_CMD_SECONDS"]),
            log_format=values["LOG_FORMAT"],
            resume_mode=values["BOOTSTRAP_RESUME_MODE"],
            exec_backend=values["EXEC_BACKEND"],
            values=values,
            toggles=dict(toggles),
        )


def load_context(
    project_root: Path,
    *,
    non_interactive: bool = False,
    overrides: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    prompt: Callable[[str], str] = input,
) -> ExecutionContext:
    return ConfigLoader(project_root, environ=environ, prompt=prompt).load(
        non_interactive=non_interactive, overrides=overrides
    )


def adopt_environment(
    ctx: ExecutionContext,
    keys: Iterable[str],
    environ: Optional[Mapping[str, str]] = None,
) -> ExecutionContext:
    """Fill unresolved ``keys`` from the environment.

    Units may require variables the config file never names; an exported value
    resolves them and is carried into ``ctx.values`` like any other key.
    """
    env = os.environ if environ is None else environ
    adopted = {
        key: env[key]
        for key in dict.fromkeys(keys)
        if not ctx.is_resolved(key) and (env.get(key) or "").strip()
    }
    if not adopted:
        return ctx
    _log.debug("Taken from the environment: %s", ", ".join(sorted(adopted)))
    return ctx.with_overrides(values={**ctx.values, **adopted})
