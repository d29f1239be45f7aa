# dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .config import ConfigFile, ProductConfig, SubmoduleConfig, build_graph
from .graph import ProductGraph
from .model import ALL_ACTIONS, Action, Layer


# ---------------------------------------------------------------------
# Submodule helper
# ---------------------------------------------------------------------

def submodule(
    name: str,
    *,
    needs: Optional[List[str]] = None,
    actions: Optional[Iterable[Action | str]] = None,
    kind: Layer | str = Layer.BINDING,
    cwd: str | None = None,
    commands: Optional[Dict[Action | str, str]] = None,
    output_dir: str = "target",
    env: Optional[Dict[str, str]] = None,
) -> SubmoduleConfig:
    """Describe one submodule. `needs` entries are "name" or "product/name"."""
    return SubmoduleConfig(
        name=name,
        needs=list(needs or []),
        actions=list(actions) if actions is not None else list(ALL_ACTIONS),
        kind=kind,
        cwd=cwd,
        commands=dict(commands or {}),
        output_dir=output_dir,
        env={k: str(v) for k, v in (env or {}).items()},
    )


def native(name: str = "native", **kwargs) -> SubmoduleConfig:
    """Native-interop layer: built and packed as a jar, never published on its own."""
    kwargs.setdefault("actions", [Action.BUILD, Action.PACK, Action.CLEAN])
    return submodule(name, kind=Layer.NATIVE, **kwargs)


def plugin(name: str = "compiler-plugin", **kwargs) -> SubmoduleConfig:
    kwargs.setdefault("actions", [Action.BUILD, Action.PACK, Action.CLEAN])
    return submodule(name, kind=Layer.PLUGIN, **kwargs)


def binding(name: str = "ballerina", **kwargs) -> SubmoduleConfig:
    return submodule(name, kind=Layer.BINDING, **kwargs)


# ---------------------------------------------------------------------
# Product helper
# ---------------------------------------------------------------------

def product(
    name: str,
    *submodules: SubmoduleConfig,
    directory: str | None = None,
    properties: Optional[Dict[str, str]] = None,
    aliases: Optional[Dict[str, str]] = None,
) -> ProductConfig:
    if not submodules:
        raise ValueError(f"product({name!r}) must have at least one submodule")
    return ProductConfig(
        name=name,
        directory=directory,
        properties={k: str(v) for k, v in (properties or {}).items()},
        aliases=dict(aliases or {}),
        submodules=list(submodules),
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class ProductBuilder:
    def __init__(self, name: str):
        self.name = name
        self._submodules: list[SubmoduleConfig] = []
        self._directory: str | None = None
        self._properties: dict[str, str] = {}
        self._aliases: dict[str, str] = {}

    def in_directory(self, directory: str):
        self._directory = directory
        return self

    def with_submodule(self, name: str, *needs: str, **kwargs):
        self._submodules.append(submodule(name, needs=list(needs), **kwargs))
        return self

    def with_property(self, **props):
        # force values to str, they end up in the child environment
        self._properties.update({k: str(v) for k, v in props.items()})
        return self

    def alias(self, alias: str, submodule_name: str):
        self._aliases[alias] = submodule_name
        return self

    def build(self) -> ProductConfig:
        if not self._submodules:
            raise ValueError(f"Product '{self.name}' has no submodules")
        return ProductConfig(
            name=self.name,
            directory=self._directory,
            properties=self._properties,
            aliases=self._aliases,
            submodules=self._submodules,
        )


def define(name: str) -> ProductBuilder:
    """Convenience: define('core').with_submodule('native').build()"""
    return ProductBuilder(name)


# ---------------------------------------------------------------------
# Graph helper
# ---------------------------------------------------------------------

def graph(*products: ProductConfig, base_dir: str = ".") -> ProductGraph:
    """
    Build a finalized graph straight from DSL records:

        g = graph(
            product("A", native(), binding(needs=["native"])),
        )
    """
    config = ConfigFile(products=list(products))
    return build_graph(config, base_dir)
