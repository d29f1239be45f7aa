# graph.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import ConfigurationError, CyclicDependencyError, UnknownTargetError
from .model import ALL_ACTIONS, Action, Layer, Product, Submodule, qualify

WHITE, GREY, BLACK = 0, 1, 2


class ProductGraph:
    """
    Multi-product dependency graph of submodules.

    Built once from configuration:
      - add_product() / add_submodule() while mutable
      - finalize() validates references, checks for cycles and freezes it
    """

    def __init__(self) -> None:
        self._products: Dict[str, Product] = {}
        self._nodes: Dict[str, Submodule] = {}   # qualified name -> submodule, declaration order
        self._finalized = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._finalized:
            raise ConfigurationError("Graph is finalized and read-only")

    def add_product(
        self,
        name: str,
        *,
        directory: str | Path | None = None,
        properties: Optional[Dict[str, str]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ) -> Product:
        self._check_mutable()
        if not name or "/" in name:
            raise ConfigurationError(f"Invalid product name: {name!r}")
        if name in self._products:
            raise ConfigurationError(f"Duplicate product name: {name}")
        product = Product(
            name=name,
            directory=Path(directory) if directory is not None else None,
            properties={k: str(v) for k, v in (properties or {}).items()},
            aliases=dict(aliases or {}),
        )
        self._products[name] = product
        return product

    def add_submodule(
        self,
        product: str,
        name: str,
        prerequisites: Iterable[str] = (),
        supported_actions: Iterable[Action | str] = ALL_ACTIONS,
        *,
        kind: Layer | str = Layer.BINDING,
        cwd: str | Path | None = None,
        commands: Optional[Dict[Action | str, str]] = None,
        output_dir: str = "target",
        env: Optional[Dict[str, str]] = None,
    ) -> Submodule:
        """
        Register a submodule. Prerequisites may be "product/name" or a bare
        name (same product). They are only resolved in finalize().
        """
        self._check_mutable()
        if product not in self._products:
            self.add_product(product)
        if not name or "/" in name:
            raise ConfigurationError(f"Invalid submodule name: {name!r}")

        owner = self._products[product]
        qname = qualify(product, name)
        if qname in self._nodes:
            raise ConfigurationError(f"Duplicate submodule '{name}' in product '{product}'")

        needs: List[str] = []
        for pre in prerequisites:
            full = pre if "/" in pre else qualify(product, pre)
            if full not in needs:
                needs.append(full)

        try:
            actions = frozenset(Action.parse(a) for a in supported_actions)
            overrides = tuple((Action.parse(a), str(cmd)) for a, cmd in (commands or {}).items())
            layer = Layer(kind)
        except ValueError as e:
            raise ConfigurationError(f"Submodule '{qname}': {e}") from e

        sub_cwd: Optional[Path] = Path(cwd) if cwd is not None else None
        if owner.directory is not None:
            sub_cwd = owner.directory / (sub_cwd if sub_cwd is not None else name)

        sub = Submodule(
            product=product,
            name=name,
            needs=tuple(needs),
            actions=actions,
            kind=layer,
            cwd=sub_cwd,
            commands=overrides,
            output_dir=output_dir,
            env=tuple(sorted((k, str(v)) for k, v in (env or {}).items())),
        )
        owner.submodules.append(sub)
        self._nodes[qname] = sub
        return sub

    def finalize(self) -> "ProductGraph":
        """Validate every prerequisite reference, then reject cycles."""
        if self._finalized:
            return self

        for sub in self._nodes.values():
            for pre in sub.needs:
                if pre not in self._nodes:
                    raise ConfigurationError(
                        f"Submodule '{sub.qualified_name}' needs missing submodule '{pre}'. "
                        f"Known submodules: {sorted(self._nodes)}"
                    )

        for product in self._products.values():
            for alias, target in product.aliases.items():
                if qualify(product.name, target) not in self._nodes:
                    raise ConfigurationError(
                        f"Alias '{alias}' in product '{product.name}' points to unknown submodule '{target}'"
                    )

        self._check_cycles()
        self._finalized = True
        return self

    def _check_cycles(self) -> None:
        color: Dict[str, int] = {n: WHITE for n in self._nodes}
        path: List[str] = []

        def visit(node: str) -> None:
            color[node] = GREY
            path.append(node)
            for pre in self._nodes[node].needs:
                if color[pre] == GREY:
                    start = path.index(pre)
                    raise CyclicDependencyError(path[start:] + [pre])
                if color[pre] == WHITE:
                    visit(pre)
            path.pop()
            color[node] = BLACK

        for node in self._nodes:
            if color[node] == WHITE:
                visit(node)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def finalized(self) -> bool:
        return self._finalized

    def products(self) -> List[Product]:
        return list(self._products.values())

    def submodules(self) -> List[Submodule]:
        return list(self._nodes.values())

    def __contains__(self, qualified_name: object) -> bool:
        return qualified_name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, qualified_name: str) -> Submodule:
        try:
            return self._nodes[qualified_name]
        except KeyError:
            raise UnknownTargetError(qualified_name, list(self._nodes)) from None

    def product_of(self, sub: Submodule) -> Product:
        return self._products[sub.product]

    def prerequisites(self, sub: Submodule) -> List[Submodule]:
        return [self._nodes[n] for n in sub.needs]

    def resolve(self, target: str) -> List[Submodule]:
        """
        Resolve a CLI target into submodules:
          - "product/submodule"  -> that submodule
          - "core-native"        -> submodule registered under that alias
          - "product"            -> every submodule of the product, in order
        """
        target = target.strip().strip("/")
        if target in self._nodes:
            return [self._nodes[target]]
        for product in self._products.values():
            if target in product.aliases:
                return [self._nodes[qualify(product.name, product.aliases[target])]]
        if target in self._products:
            return list(self._products[target].submodules)
        raise UnknownTargetError(target, list(self._nodes))
