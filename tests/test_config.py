from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from buildgraph.config import (
    RegistryConfig,
    Settings,
    discover_config,
    load_config,
)
from buildgraph.dsl import binding, define, graph, native, plugin, product, submodule
from buildgraph.errors import ConfigurationError, CyclicDependencyError
from buildgraph.model import Action, Layer
from buildgraph.planner import TaskPlanner

REPO_ROOT = Path(__file__).resolve().parents[1]


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(dedent(text), encoding="utf-8")
    return path


def test_yaml_mapping_form(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "buildgraph.yaml",
        """
        products:
          A:
            submodules:
              native:
                kind: native
                actions: [build, pack]
              binding:
                needs: [native]
                actions: [build, pack, push-local]
        """,
    )

    loaded = load_config(path)

    sub = loaded.graph.get("A/binding")
    assert sub.needs == ("A/native",)
    assert sub.kind is Layer.BINDING
    assert sub.cwd == tmp_path.resolve() / "A" / "binding"
    assert loaded.graph.get("A/native").actions == frozenset({Action.BUILD, Action.PACK})


def test_yaml_list_form_and_directories(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "buildgraph.yml",
        """
        products:
          - name: core
            directory: modules/core
            submodules:
              - name: native
                cwd: java
              - name: ballerina
                needs: [native]
        """,
    )

    loaded = load_config(path)

    assert loaded.graph.get("core/native").cwd == tmp_path.resolve() / "modules" / "core" / "java"
    assert loaded.graph.get("core/ballerina").cwd == tmp_path.resolve() / "modules" / "core" / "ballerina"


@pytest.mark.parametrize(
    "body, message",
    [
        ("products:\n  A:\n    submodules:\n      x:\n        actions: [deploy]\n", "Unknown action"),
        ("products:\n  A:\n    submodules:\n      x:\n        colour: red\n", "colour"),
        ("products:\n  A:\n    submodules:\n      x:\n        kind: firmware\n", "kind"),
        ("registry: {}\n", "products"),
        ("- just\n- a list\n", "top level must be a mapping"),
        ("products: [unclosed\n", "could not parse YAML"),
        ("products:\n  A:\n    submodules:\n      x:\n        actions: 5\n", "actions must be a list"),
    ],
)
def test_malformed_yaml_fails_fast(tmp_path: Path, body: str, message: str) -> None:
    path = _write(tmp_path, "buildgraph.yaml", body)

    with pytest.raises(ConfigurationError, match=message):
        load_config(path)


def test_unknown_prerequisite_in_yaml(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "buildgraph.yaml",
        """
        products:
          dicom:
            submodules:
              ballerina:
                needs: [core/ballerina]
        """,
    )

    with pytest.raises(ConfigurationError, match="core/ballerina"):
        load_config(path)


def test_cycle_in_yaml(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "buildgraph.yaml",
        """
        products:
          a:
            submodules:
              x: {needs: [b/y]}
          b:
            submodules:
              y: {needs: [a/x]}
        """,
    )

    with pytest.raises(CyclicDependencyError):
        load_config(path)


def test_python_config(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "family_buildgraph.py",
        """
        from buildgraph.config import RegistryConfig
        from buildgraph.dsl import product, native, binding

        REGISTRY = RegistryConfig(username_env="GITHUB_USERNAME", password_env="GITHUB_PAT")

        def products():
            return [
                product("core", native(), binding(needs=["native"])),
            ]
        """,
    )

    loaded = load_config(path)

    assert loaded.config.registry.password_env == "GITHUB_PAT"
    assert [s.qualified_name for s in loaded.graph.submodules()] == ["core/native", "core/ballerina"]


def test_undecodable_yaml_is_a_configuration_error(tmp_path: Path) -> None:
    path = tmp_path / "buildgraph.yaml"
    path.write_bytes(b"\xff\xfe\x00products")

    with pytest.raises(ConfigurationError, match="could not read config"):
        load_config(path)


def test_failing_products_function_is_a_configuration_error(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "broken_buildgraph.py",
        """
        def products():
            return 1 / 0
        """,
    )

    with pytest.raises(ConfigurationError, match="products\\(\\) failed"):
        load_config(path)


def test_python_config_must_define_products(tmp_path: Path) -> None:
    path = _write(tmp_path, "empty_buildgraph.py", "X = 1\n")

    with pytest.raises(ConfigurationError, match="List\\[ProductConfig\\]"):
        load_config(path)


def test_unsupported_extension(tmp_path: Path) -> None:
    path = _write(tmp_path, "buildgraph.toml", "")

    with pytest.raises(ConfigurationError, match=".yaml, .yml or .py"):
        load_config(path)


def test_discover_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="No config file found"):
        discover_config(None, tmp_path, environ={})

    _write(tmp_path, "buildgraph.yaml", "products: {}\n")
    assert discover_config(None, tmp_path, environ={}) == tmp_path / "buildgraph.yaml"

    _write(tmp_path, "extra_buildgraph.py", "PRODUCTS = []\n")
    with pytest.raises(ConfigurationError, match="Multiple config files"):
        discover_config(None, tmp_path, environ={})

    chosen = str(tmp_path / "extra_buildgraph.py")
    assert discover_config(chosen, tmp_path, environ={}) == Path(chosen)
    assert discover_config(None, tmp_path, environ={"BUILDGRAPH_CONFIG": chosen}) == Path(chosen)


def test_settings_read_credentials_without_inspecting_them() -> None:
    registry = RegistryConfig(url="https://registry.example", username_env="GITHUB_USERNAME", password_env="GITHUB_PAT")

    settings = Settings.from_env(registry, environ={"GITHUB_USERNAME": "", "GITHUB_PAT": "s3cr3t"})

    assert settings.command_env() == {
        "REGISTRY_URL": "https://registry.example",
        "REGISTRY_USERNAME": "",
        "GITHUB_USERNAME": "",
        "REGISTRY_PASSWORD": "s3cr3t",
        "GITHUB_PAT": "s3cr3t",
    }


def test_settings_without_credentials() -> None:
    assert Settings.from_env(environ={}).command_env() == {}


def test_dsl_builds_the_same_graph_as_yaml(tmp_path: Path) -> None:
    g = graph(
        product("dicomservice", plugin(), native(), binding(needs=["compiler-plugin", "native"])),
        base_dir=str(tmp_path),
    )

    plan = TaskPlanner(g).plan(Action.PUSH_LOCAL, "dicomservice/ballerina")

    assert [str(s) for s in plan] == [
        "dicomservice/compiler-plugin:build",
        "dicomservice/native:build",
        "dicomservice/ballerina:build",
        "dicomservice/ballerina:pack",
    ]


def test_graph_helper_does_not_take_registry_settings(tmp_path: Path) -> None:
    core = product("core", native(), binding(needs=["native"]))

    with pytest.raises(TypeError):
        graph(core, base_dir=str(tmp_path), registry=RegistryConfig(url="https://registry.example"))

    assert len(graph(core, base_dir=str(tmp_path))) == 2


def test_product_builder() -> None:
    cfg = (
        define("core")
        .in_directory("core")
        .with_submodule("native", kind="native", actions=["build", "pack"])
        .with_submodule("ballerina", "native")
        .with_property(ballerinaLangVersion=2201)
        .alias("core-native", "native")
        .build()
    )

    assert cfg.properties == {"ballerinaLangVersion": "2201"}
    assert [s.name for s in cfg.submodules] == ["native", "ballerina"]
    assert cfg.submodules[1].needs == ["native"]
    assert cfg.aliases == {"core-native": "native"}


def test_empty_product_is_rejected() -> None:
    with pytest.raises(ValueError):
        product("core")
    with pytest.raises(ValueError):
        define("core").build()


def test_submodule_helper_defaults() -> None:
    s = submodule("ballerina")

    assert s.actions == list(Action)
    assert s.output_dir == "target"


def test_repository_config_loads_and_plans() -> None:
    loaded = load_config(REPO_ROOT / "buildgraph.yaml")
    planner = TaskPlanner(loaded.graph)

    plan = planner.plan(Action.PUSH_LOCAL, "dicomservice/ballerina")

    assert plan.pairs()[-1] == ("dicomservice/ballerina", Action.PACK)
    names = [name for name, _ in plan.pairs()]
    assert names.index("dicomservice/compiler-plugin") < names.index("dicomservice/ballerina")
    assert names.index("core/native") < names.index("core/ballerina") < names.index("dicom/ballerina")
    assert loaded.config.registry.username_env == "GITHUB_USERNAME"
