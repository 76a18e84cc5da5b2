"""Command line options and JSON configuration files."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

DEFAULT_SRID = 3857
DEFAULT_CACHE_DIR = "/tmp/imposm3"
DEFAULT_SCHEMA_IMPORT = "import"
DEFAULT_SCHEMA_PRODUCTION = "public"
DEFAULT_SCHEMA_BACKUP = "backup"
DEFAULT_EXPIRE_TILES_ZOOM = 14

_MINUTE = timedelta(minutes=1)


class ConfigError(ValueError):
    """Raised for invalid command line options or configuration files."""

    def __init__(self, message: str, errors: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)


_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"([0-9]*(?:\.[0-9]*)?)([^0-9.]*)")
_MAX_NS = (1 << 63) - 1


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as 300ms, 1.5h or 2h45m."""
    invalid = ConfigError(f'time: invalid duration "{text}"')
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise invalid
    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _COMPONENT.match(rest, pos)
        number, unit = match.groups()
        if number in ("", "."):
            raise invalid
        if not unit:
            raise ConfigError(f'time: missing unit in duration "{text}"')
        if unit not in _UNITS:
            raise ConfigError(f'time: unknown unit "{unit}" in duration "{text}"')
        total += Decimal(number) * _UNITS[unit]
        pos = match.end()
    nanoseconds = int(total)
    if nanoseconds > _MAX_NS + (1 if negative else 0):
        raise invalid
    microseconds = nanoseconds // 1000
    return timedelta(microseconds=-microseconds if negative else microseconds)


def parse_minutes_interval(value: Any) -> timedelta:
    """Parse a JSON interval: a duration string or a whole number of minutes."""
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"invalid interval {value!r}: expected minutes or a duration string")
    return timedelta(minutes=value)


@dataclass
class Schemas:
    """Database schemas for imports, production and backups."""

    import_: str = DEFAULT_SCHEMA_IMPORT
    production: str = DEFAULT_SCHEMA_PRODUCTION
    backup: str = DEFAULT_SCHEMA_BACKUP


@dataclass
class _FileConfig:
    cache_dir: str = DEFAULT_CACHE_DIR
    diff_dir: str = ""
    connection: str = ""
    mapping_file: str = ""
    limit_to: str = ""
    limit_to_cache_buffer: float = 0.0
    srid: int = DEFAULT_SRID
    schema_import: str = ""
    schema_production: str = ""
    schema_backup: str = ""
    expire_tiles_dir: str = ""
    expire_tiles_zoom: int = 0
    replication_url: str = ""
    replication_interval: timedelta = timedelta(0)
    diff_state_before: timedelta = timedelta(0)


def _json_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"config: {key} must be a string, got {value!r}")
    return value


def _json_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"config: {key} must be an integer, got {value!r}")
    return value


def _json_float(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"config: {key} must be a number, got {value!r}")
    return float(value)


def _json_interval(key: str, value: Any) -> timedelta:
    return parse_minutes_interval(value)


_FILE_KEYS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "cachedir": ("cache_dir", _json_str),
    "diffdir": ("diff_dir", _json_str),
    "connection": ("connection", _json_str),
    "mapping": ("mapping_file", _json_str),
    "limitto": ("limit_to", _json_str),
    "limitto_cache_buffer": ("limit_to_cache_buffer", _json_float),
    "srid": ("srid", _json_int),
    "expiretiles_dir": ("expire_tiles_dir", _json_str),
    "expiretiles_zoom": ("expire_tiles_zoom", _json_int),
    "replication_url": ("replication_url", _json_str),
    "replication_interval": ("replication_interval", _json_interval),
    "diff_state_before": ("diff_state_before", _json_interval),
}

_SCHEMA_KEYS = {
    "import": "schema_import",
    "production": "schema_production",
    "backup": "schema_backup",
}


def _read_config(path: str) -> _FileConfig:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise ConfigError(f"reading config {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parsing config {path}: {exc}") from exc

    conf = _FileConfig()
    if data is None:
        return conf
    if not isinstance(data, dict):
        raise ConfigError(f"parsing config {path}: expected a JSON object")
    for key, value in data.items():
        lowered = key.lower()
        if value is None:
            continue
        if lowered == "schemas":
            if not isinstance(value, dict):
                raise ConfigError("config: schemas must be an object")
            for schema_key, schema_value in value.items():
                name = _SCHEMA_KEYS.get(schema_key.lower())
                if name is not None and schema_value is not None:
                    setattr(conf, name, _json_str(f"schemas.{schema_key}", schema_value))
            continue
        entry = _FILE_KEYS.get(lowered)
        if entry is not None:
            name, convert = entry
            setattr(conf, name, convert(key, value))
    return conf


@dataclass
class BaseOptions:
    """Options shared by all commands."""

    connection: str = ""
    cache_dir: str = DEFAULT_CACHE_DIR
    diff_dir: str = ""
    mapping_file: str = ""
    srid: int = DEFAULT_SRID
    limit_to: str = ""
    limit_to_cache_buffer: float = 0.0
    config_file: str = ""
    http_profile: str = ""
    quiet: bool = False
    schemas: Schemas = field(default_factory=Schemas)
    expire_tiles_dir: str = ""
    expire_tiles_zoom: int = 0
    replication_url: str = ""
    replication_interval: timedelta = _MINUTE
    diff_state_before: timedelta = timedelta(0)
    force_diff_import: bool = False

    def update_from_config(self) -> None:
        """Fill options left at their defaults from the JSON config file."""
        conf = _read_config(self.config_file) if self.config_file else _FileConfig()

        if conf.schema_import and self.schemas.import_ == DEFAULT_SCHEMA_IMPORT:
            self.schemas.import_ = conf.schema_import
        if conf.schema_production and self.schemas.production == DEFAULT_SCHEMA_PRODUCTION:
            self.schemas.production = conf.schema_production
        if conf.schema_backup and self.schemas.backup == DEFAULT_SCHEMA_BACKUP:
            self.schemas.backup = conf.schema_backup

        if not self.connection:
            self.connection = conf.connection
        if conf.srid == 0:
            conf.srid = DEFAULT_SRID
        if self.srid == DEFAULT_SRID:
            self.srid = conf.srid
        if not self.mapping_file:
            self.mapping_file = conf.mapping_file
        if not self.limit_to:
            self.limit_to = conf.limit_to
        if self.limit_to == "NONE":
            # allows overriding the config file from the command line
            self.limit_to = ""
        if self.limit_to_cache_buffer == 0.0:
            self.limit_to_cache_buffer = conf.limit_to_cache_buffer
        if self.cache_dir == DEFAULT_CACHE_DIR:
            self.cache_dir = conf.cache_dir

        if not self.expire_tiles_dir:
            self.expire_tiles_dir = conf.expire_tiles_dir
        if self.expire_tiles_zoom == 0:
            self.expire_tiles_zoom = conf.expire_tiles_zoom
        if not 6 <= self.expire_tiles_zoom <= 18:
            self.expire_tiles_zoom = DEFAULT_EXPIRE_TILES_ZOOM

        if conf.replication_interval and self.replication_interval == _MINUTE:
            self.replication_interval = conf.replication_interval
        if self.replication_interval < _MINUTE:
            self.replication_interval = _MINUTE
        self.replication_url = conf.replication_url

        if not self.diff_dir:
            # the cache dir is used for backwards compatibility
            self.diff_dir = conf.diff_dir or self.cache_dir

        if conf.diff_state_before and not self.diff_state_before:
            self.diff_state_before = conf.diff_state_before

    def check(self) -> list[str]:
        """Return the problems with these options, if any."""
        errors = []
        if self.srid not in (3857, 4326):
            errors.append("only -srid=3857 or -srid=4326 are supported")
        if not self.mapping_file:
            errors.append("missing mapping")
        return errors


@dataclass
class ImportOptions:
    """Options of the import command."""

    base: BaseOptions = field(default_factory=BaseOptions)
    overwrite_cache: bool = False
    append_cache: bool = False
    read: str = ""
    write: bool = False
    optimize: bool = False
    diff: bool = False
    deploy_production: bool = False
    revert_deploy: bool = False
    remove_backup: bool = False


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _string(value: str) -> str:
    return value


def _integer(value: str) -> int:
    if value != value.strip():
        raise ValueError(value)
    try:
        return int(value, 0)
    except ValueError:
        if re.fullmatch(r"[+-]?0[0-7]+", value):
            return int(value, 8)
        raise


def _number(value: str) -> float:
    if value != value.strip():
        raise ValueError(value)
    return float(value)


def _duration(value: str) -> timedelta:
    try:
        return parse_duration(value)
    except ConfigError as exc:
        raise ValueError(str(exc)) from exc


def _boolean(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(value)


@dataclass(frozen=True)
class _Flag:
    name: str
    attr: str
    convert: Callable[[str], Any]

    @property
    def is_bool(self) -> bool:
        return self.convert is _boolean


def _base_flags(prefix: str = "") -> list[_Flag]:
    return [
        _Flag("connection", prefix + "connection", _string),
        _Flag("cachedir", prefix + "cache_dir", _string),
        _Flag("diffdir", prefix + "diff_dir", _string),
        _Flag("mapping", prefix + "mapping_file", _string),
        _Flag("srid", prefix + "srid", _integer),
        _Flag("limitto", prefix + "limit_to", _string),
        _Flag("limittocachebuffer", prefix + "limit_to_cache_buffer", _number),
        _Flag("config", prefix + "config_file", _string),
        _Flag("httpprofile", prefix + "http_profile", _string),
        _Flag("quiet", prefix + "quiet", _boolean),
        _Flag("dbschema-import", prefix + "schemas.import_", _string),
        _Flag("dbschema-production", prefix + "schemas.production", _string),
        _Flag("dbschema-backup", prefix + "schemas.backup", _string),
    ]


def _assign(root: Any, path: str, value: Any) -> None:
    *parents, name = path.split(".")
    target = root
    for parent in parents:
        target = getattr(target, parent)
    setattr(target, name, value)


def _parse_flags(root: Any, flags: Sequence[_Flag], args: Sequence[str]) -> list[str]:
    """Set flag values on root and return the remaining positional arguments."""
    by_name = {flag.name: flag for flag in flags}
    args = list(args)
    i = 0
    while i < len(args):
        arg = args[i]
        if len(arg) < 2 or arg[0] != "-":
            break
        if arg == "--":
            i += 1
            break
        body = arg[2:] if arg.startswith("--") else arg[1:]
        if not body or body[0] in "-=":
            raise ConfigError(f"bad flag syntax: {arg}")
        name, has_value, value = body.partition("=")
        flag = by_name.get(name)
        if flag is None:
            raise ConfigError(f"flag provided but not defined: -{name}")
        if flag.is_bool and not has_value:
            value = "true"
        elif not has_value:
            i += 1
            if i >= len(args):
                raise ConfigError(f"flag needs an argument: -{name}")
            value = args[i]
        try:
            converted = flag.convert(value)
        except (ValueError, InvalidOperation) as exc:
            raise ConfigError(f'invalid value "{value}" for flag -{name}: {exc}') from exc
        _assign(root, flag.attr, converted)
        i += 1
    return args[i:]


def _finish(base: BaseOptions) -> None:
    base.update_from_config()
    errors = base.check()
    if errors:
        message = "errors in config/options:\n" + "\n".join(f"\t{e}" for e in errors)
        raise ConfigError(message, errors)


def _require_args(command: str, args: Sequence[str]) -> None:
    if not args:
        raise ConfigError(f"usage: imposm {command} [args]")


def parse_import(args: Sequence[str]) -> ImportOptions:
    """Parse the arguments of the import command."""
    _require_args("import", args)
    opts = ImportOptions()
    flags = _base_flags("base.") + [
        _Flag("overwritecache", "overwrite_cache", _boolean),
        _Flag("appendcache", "append_cache", _boolean),
        _Flag("read", "read", _string),
        _Flag("write", "write", _boolean),
        _Flag("optimize", "optimize", _boolean),
        _Flag("diff", "diff", _boolean),
        _Flag("deployproduction", "deploy_production", _boolean),
        _Flag("revertdeploy", "revert_deploy", _boolean),
        _Flag("removebackup", "remove_backup", _boolean),
        _Flag("diff-state-before", "base.diff_state_before", _duration),
        _Flag("replication-interval", "base.replication_interval", _duration),
    ]
    _parse_flags(opts, flags, args)
    _finish(opts.base)
    return opts


def parse_diff_import(args: Sequence[str]) -> tuple[BaseOptions, list[str]]:
    """Parse the arguments of the diff command; returns options and diff files."""
    _require_args("diff", args)
    opts = BaseOptions(replication_interval=timedelta(0), expire_tiles_zoom=DEFAULT_EXPIRE_TILES_ZOOM)
    flags = _base_flags() + [
        _Flag("expiretiles-dir", "expire_tiles_dir", _string),
        _Flag("expiretiles-zoom", "expire_tiles_zoom", _integer),
        _Flag("force", "force_diff_import", _boolean),
    ]
    rest = _parse_flags(opts, flags, args)
    _finish(opts)
    return opts, rest


def parse_run_import(args: Sequence[str]) -> BaseOptions:
    """Parse the arguments of the run command."""
    _require_args("run", args)
    opts = BaseOptions(expire_tiles_zoom=DEFAULT_EXPIRE_TILES_ZOOM)
    flags = _base_flags() + [
        _Flag("expiretiles-dir", "expire_tiles_dir", _string),
        _Flag("expiretiles-zoom", "expire_tiles_zoom", _integer),
        _Flag("replication-interval", "replication_interval", _duration),
    ]
    _parse_flags(opts, flags, args)
    _finish(opts)
    return opts