import logging
import os
import tomllib
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated, Any, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    StringConstraints,
    ValidationError,
    field_validator,
)

from .errors import ConfigLoadError
from .i18n import _
from .models import ConcurrencyClass, Phase

DEFAULT_CONFIG_FILE_NAME = "hybrid7z.toml"
DEFAULT_LOG_FOLDER = "logs"
DEFAULT_FILTER_FOLDER = "filters"
DEFAULT_LOG_FILE_NAME = "hybrid7z.log"
GLOBAL_EXCLUSION_FILE_NAME = "Exclude.txt"

PhaseName = Annotated[StrictStr, StringConstraints(min_length=1)]

DEFAULT_CONFIG = """\
[archiver]
executable = "7z"
parameters = "a -t7z -mhe -ms=1g -mqs -slp -bt -bb3 -sae"
password_parameter = "-p{password}"
log_folder = "logs"

[phase]
# The last phase is terminal: it receives every file no earlier phase claimed.
phase_list = ["PPMd", "Copy", "x86", "LZMA2"]

# true: run every target at once. false: one target at a time.
[phase.parallel]
PPMd = true
Copy = true
x86 = false
LZMA2 = false

[phase.parameters]
PPMd = "-m0=PPMd -mx=9 -myx=9 -mmem=1024m -mo=32 -mmt=1"
Copy = "-m0=Copy -mx=0"
x86 = "-mf=BCJ2 -m0=LZMA2 -mx=9 -myx=9 -md=1024m -mfb=273 -mmt=8 -mmtf -mmf=bt4 -mmc=10000 -mlc=4"
LZMA2 = "-m0=LZMA2 -mx=9 -myx=9 -md=256m -mfb=273 -mmt=8 -mmtf -mmf=bt4 -mmc=10000 -mlc=4"

[phase.archiver_override]

[misc]
include_root_folder = false
delete_filter_cache = true
"""


@dataclass(frozen=True)
class Hybrid7zConfig:
    archiver_executable: str
    archiver_parameters: str
    password_parameter: str
    log_folder: str
    phase_list: tuple[str, ...]
    phase_parallel: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    phase_parameters: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    archiver_override: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    include_root_folder: bool = False
    delete_filter_cache: bool = True

    def executable_for(self, phase_name: str) -> str:
        return self.archiver_override.get(phase_name, self.archiver_executable)

    def concurrency_for(self, phase_name: str) -> ConcurrencyClass:
        if self.phase_parallel.get(phase_name, False):
            return ConcurrencyClass.EMBARRASSINGLY_PARALLEL
        return ConcurrencyClass.EXCLUSIVE_RESOURCE

    def build_phases(self) -> list[Phase]:
        phases = []
        last = len(self.phase_list) - 1
        for index, name in enumerate(self.phase_list):
            phase = Phase(
                name=name,
                index=index,
                terminal=index == last,
                concurrency=self.concurrency_for(name),
                executable=self.executable_for(name),
                parameters=self.phase_parameters.get(name, ""),
            )
            logging.debug(
                "Phase constructed: name=%s, terminal=%s, parallel=%s",
                phase.name,
                phase.terminal,
                phase.parallel,
            )
            phases.append(phase)
        return phases


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ArchiverSection(_Section):
    executable: StrictStr = Field(..., min_length=1)
    parameters: StrictStr = ""
    password_parameter: StrictStr = "-p{password}"
    log_folder: StrictStr = DEFAULT_LOG_FOLDER


class PhaseSection(_Section):
    # The last phase is terminal.
    phase_list: list[PhaseName] = Field(..., min_length=1)
    parallel: dict[str, StrictBool] = Field(default_factory=dict)
    parameters: dict[str, StrictStr] = Field(default_factory=dict)
    archiver_override: dict[str, StrictStr] = Field(default_factory=dict)

    @field_validator("phase_list")
    @classmethod
    def _unique_phase_names(cls, value: list[str]) -> list[str]:
        seen = set()
        for name in value:
            if name in seen:
                raise ValueError(f"phase {name!r} is listed more than once")
            seen.add(name)
        return value


class MiscSection(_Section):
    include_root_folder: StrictBool = False
    delete_filter_cache: StrictBool = True


class ConfigDocument(_Section):
    archiver: ArchiverSection
    phase: PhaseSection
    misc: MiscSection = Field(default_factory=MiscSection)


def _describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )


def parse_config(document: Mapping[str, Any], path: str = "<memory>") -> Hybrid7zConfig:
    try:
        parsed = ConfigDocument.model_validate(document)
    except ValidationError as exc:
        raise ConfigLoadError(path, _describe_validation_error(exc)) from exc

    return Hybrid7zConfig(
        archiver_executable=parsed.archiver.executable,
        archiver_parameters=parsed.archiver.parameters,
        password_parameter=parsed.archiver.password_parameter,
        log_folder=parsed.archiver.log_folder,
        phase_list=tuple(parsed.phase.phase_list),
        phase_parallel=MappingProxyType(dict(parsed.phase.parallel)),
        phase_parameters=MappingProxyType(dict(parsed.phase.parameters)),
        archiver_override=MappingProxyType(dict(parsed.phase.archiver_override)),
        include_root_folder=parsed.misc.include_root_folder,
        delete_filter_cache=parsed.misc.delete_filter_cache,
    )


def load_config(path: str) -> Hybrid7zConfig:
    try:
        with open(path, "rb") as handle:
            document = tomllib.load(handle)
    except OSError as exc:
        raise ConfigLoadError(path, str(exc)) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(path, str(exc).split("\n")[0]) from exc
    return parse_config(document, path)


def save_default_config(path: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(DEFAULT_CONFIG)


def load_config_with_fallback(path: str) -> Hybrid7zConfig:
    logging.debug("Loading configuration: %s", path)
    if not os.path.exists(path):
        logging.warning(_("Configuration file not found! Writing default configuration file to: %s"), path)
        save_default_config(path)

    try:
        return load_config(path)
    except ConfigLoadError as exc:
        logging.error(_("Config loading error, falling back to default config: %s"), exc)

    backup = path + ".bak"
    try:
        os.replace(path, backup)
        logging.warning(_("Broken configuration moved to %s"), backup)
        save_default_config(path)
        return load_config(path)
    except (OSError, ConfigLoadError) as exc:
        raise ConfigLoadError(path, f"default configuration could not be loaded: {exc}") from exc


def resolve_path(value: str, base: str) -> str:
    return value if os.path.isabs(value) else os.path.join(base, value)


def global_exclusion_file(filter_folder: str) -> Optional[str]:
    candidate = os.path.join(filter_folder, GLOBAL_EXCLUSION_FILE_NAME)
    return candidate if os.path.isfile(candidate) else None
