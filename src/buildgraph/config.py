# config.py
from __future__ import annotations

import os
import runpy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .graph import ProductGraph
from .model import ALL_ACTIONS, Action, Layer

DEFAULT_CONFIG_NAMES = ("buildgraph.yaml", "buildgraph.yml")
CONFIG_ENV_VAR = "BUILDGRAPH_CONFIG"


# -------------------- Schemas --------------------

def _named_list(value: Any) -> Any:
    """Accept `{name: {...}}` mappings as well as `[{name: ..., ...}]` lists."""
    if isinstance(value, Mapping):
        out = []
        for name, body in value.items():
            if body is None:
                body = {}
            if isinstance(body, Mapping):
                body = dict(body)
                body.setdefault("name", name)
            out.append(body)
        return out
    return value


class SubmoduleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    needs: List[str] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=lambda: list(ALL_ACTIONS))
    kind: Layer = Layer.BINDING
    cwd: Optional[str] = None
    commands: Dict[Action, str] = Field(default_factory=dict)
    output_dir: str = "target"
    env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("actions", mode="before")
    @classmethod
    def _parse_actions(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError(f"actions must be a list of action names, got {type(v).__name__}")
        return [Action.parse(a) for a in v]

    @field_validator("commands", mode="before")
    @classmethod
    def _parse_commands(cls, v: Any) -> Any:
        if v is not None and not isinstance(v, Mapping):
            return v
        return {Action.parse(k): cmd for k, cmd in (v or {}).items()}

    @field_validator("env", mode="before")
    @classmethod
    def _stringify_env(cls, v: Any) -> Any:
        if v is not None and not isinstance(v, Mapping):
            return v
        return {k: str(val) for k, val in (v or {}).items()}


class ProductConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    directory: Optional[str] = None
    properties: Dict[str, str] = Field(default_factory=dict)
    aliases: Dict[str, str] = Field(default_factory=dict)
    submodules: List[SubmoduleConfig] = Field(default_factory=list)

    @field_validator("submodules", mode="before")
    @classmethod
    def _submodule_mapping(cls, v: Any) -> Any:
        return _named_list(v)

    @field_validator("properties", mode="before")
    @classmethod
    def _stringify_properties(cls, v: Any) -> Any:
        if v is not None and not isinstance(v, Mapping):
            return v
        return {k: str(val) for k, val in (v or {}).items()}


class RegistryConfig(BaseModel):
    """Where packages are published and which env vars hold the credentials."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    url: Optional[str] = None
    username_env: str = "REGISTRY_USERNAME"
    password_env: str = "REGISTRY_PASSWORD"


class ConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    products: List[ProductConfig]

    @field_validator("products", mode="before")
    @classmethod
    def _product_mapping(cls, v: Any) -> Any:
        return _named_list(v)

    @model_validator(mode="after")
    def _unique_products(self) -> "ConfigFile":
        names = [p.name for p in self.products]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate product names: {dupes}")
        return self


# -------------------- Runtime settings --------------------

@dataclass(frozen=True)
class Settings:
    """
    Values read once from the environment at startup.

    Credentials are handed to child processes untouched; nothing here
    checks them.
    """
    registry_url: Optional[str] = None
    registry_username: Optional[str] = None
    registry_password: Optional[str] = None
    username_env: str = "REGISTRY_USERNAME"
    password_env: str = "REGISTRY_PASSWORD"

    @classmethod
    def from_env(cls, registry: RegistryConfig | None = None, environ: Mapping[str, str] | None = None) -> "Settings":
        registry = registry or RegistryConfig()
        environ = os.environ if environ is None else environ
        return cls(
            registry_url=environ.get("REGISTRY_URL", registry.url),
            registry_username=environ.get(registry.username_env),
            registry_password=environ.get(registry.password_env),
            username_env=registry.username_env,
            password_env=registry.password_env,
        )

    def command_env(self) -> Dict[str, str]:
        env: Dict[str, str] = {}
        if self.registry_url:
            env["REGISTRY_URL"] = self.registry_url
        if self.registry_username is not None:
            env["REGISTRY_USERNAME"] = self.registry_username
            env[self.username_env] = self.registry_username
        if self.registry_password is not None:
            env["REGISTRY_PASSWORD"] = self.registry_password
            env[self.password_env] = self.registry_password
        return env


# -------------------- Loading --------------------

@dataclass
class LoadedConfig:
    path: Path
    config: ConfigFile
    graph: Optional[ProductGraph] = field(default=None, repr=False)

    @property
    def base_dir(self) -> Path:
        return self.path.parent


def _validate(data: Any, source: Path) -> ConfigFile:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{source}: top level must be a mapping with a 'products' key")
    try:
        return ConfigFile.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigurationError(f"{source}: invalid configuration\n{e}") from e


def _load_yaml(path: Path) -> ConfigFile:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path}: could not parse YAML: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"{path}: could not read config: {e}") from e
    return _validate(data, path)


def _load_python(path: Path) -> ConfigFile:
    """
    Run a python config file. It must define either:
      - products() -> List[ProductConfig]
      - PRODUCTS = [ProductConfig, ...]
    and may define REGISTRY = RegistryConfig(...).
    """
    module_name = f"buildgraph_config_{path.stem}"
    try:
        globals_dict = runpy.run_path(str(path), run_name=module_name)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"{path}: failed to execute config: {e}") from e

    products = None
    if callable(globals_dict.get("products")):
        try:
            products = globals_dict["products"]()
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"{path}: products() failed: {e}") from e
    elif "PRODUCTS" in globals_dict:
        products = globals_dict["PRODUCTS"]

    if not isinstance(products, list) or not all(isinstance(p, ProductConfig) for p in products):
        raise ConfigurationError(
            f"{path}: config must return/define a List[ProductConfig]. "
            "Define products() -> List[ProductConfig] or PRODUCTS = [...]."
        )

    registry = globals_dict.get("REGISTRY") or RegistryConfig()
    if not isinstance(registry, RegistryConfig):
        raise ConfigurationError(f"{path}: REGISTRY must be a RegistryConfig")
    try:
        return ConfigFile(registry=registry, products=products)
    except ValidationError as e:
        raise ConfigurationError(f"{path}: invalid configuration\n{e}") from e


def build_graph(config: ConfigFile, base_dir: str | Path = ".") -> ProductGraph:
    """Turn validated config records into a finalized ProductGraph."""
    base = Path(base_dir).resolve()
    graph = ProductGraph()
    for p in config.products:
        directory = base / (p.directory if p.directory is not None else p.name)
        graph.add_product(p.name, directory=directory, properties=p.properties, aliases=p.aliases)
        for s in p.submodules:
            graph.add_submodule(
                p.name,
                s.name,
                s.needs,
                s.actions,
                kind=s.kind,
                cwd=s.cwd,
                commands=s.commands,
                output_dir=s.output_dir,
                env=s.env,
            )
    return graph.finalize()


def load_config(path: str | Path) -> LoadedConfig:
    """Load, validate and build the graph for a YAML or python config file."""
    cfg_path = Path(path).expanduser().resolve()
    if not cfg_path.exists():
        raise ConfigurationError(f"Config file not found: {cfg_path}")

    if cfg_path.suffix in (".yaml", ".yml"):
        config = _load_yaml(cfg_path)
    elif cfg_path.suffix == ".py":
        config = _load_python(cfg_path)
    else:
        raise ConfigurationError(f"Config must be a .yaml, .yml or .py file, got: {cfg_path.name}")

    loaded = LoadedConfig(path=cfg_path, config=config)
    loaded.graph = build_graph(config, loaded.base_dir)
    return loaded


def find_config_files(directory: str | Path = ".") -> List[Path]:
    root = Path(directory)
    found = [root / n for n in DEFAULT_CONFIG_NAMES if (root / n).exists()]
    found.extend(sorted(root.glob("*_buildgraph.py")))
    return found


def discover_config(config_arg: str | None, directory: str | Path = ".", environ: Mapping[str, str] | None = None) -> Path:
    """
    Pick the config file: explicit argument, then $BUILDGRAPH_CONFIG, then
    the single buildgraph.yaml / *_buildgraph.py in `directory`.
    """
    environ = os.environ if environ is None else environ
    explicit = config_arg or environ.get(CONFIG_ENV_VAR)
    if explicit:
        p = Path(explicit)
        if not p.exists():
            raise ConfigurationError(f"Config file not found: {explicit}")
        return p

    candidates = find_config_files(directory)
    if not candidates:
        raise ConfigurationError(
            "No config file found. Looked for: " + ", ".join([*DEFAULT_CONFIG_NAMES, "*_buildgraph.py"])
        )
    if len(candidates) > 1:
        raise ConfigurationError(
            "Multiple config files found, pass --config to choose one: " + ", ".join(str(c) for c in candidates)
        )
    return candidates[0]
