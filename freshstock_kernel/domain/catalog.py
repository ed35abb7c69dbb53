"""
Catalog value objects and lookup contract (``freshstock_kernel.domain.catalog``).

Responsibility
--------------
Frozen ``Branch`` and ``Product`` snapshots plus the ``CatalogLookup``
protocol through which the core reads them.  The catalog itself is owned by
the surrounding application; the core never writes to it.

Invariants
----------
- ``Product.sell_price`` and ``Product.buy_price`` are non-negative Decimals.
- ``Product.minimum_stock`` is a non-negative integer.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence
from uuid import UUID

from freshstock_kernel.exceptions import BranchNotFoundError, ProductNotFoundError


@dataclass(frozen=True)
class Branch:
    """
    A store or warehouse in the chain.

    ``city`` and ``province`` feed the distance heuristic only.
    """
    id: UUID
    code: str
    name: str
    city: str = ""
    province: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class Product:
    """A sellable product as the catalog currently describes it."""
    id: UUID
    code: str
    name: str
    sell_price: Decimal
    buy_price: Decimal
    minimum_stock: int = 0
    is_active: bool = True
    requires_expiry: bool = True

    def __post_init__(self):
        if self.sell_price < 0:
            raise ValueError(f"sell_price cannot be negative (got {self.sell_price})")
        if self.buy_price < 0:
            raise ValueError(f"buy_price cannot be negative (got {self.buy_price})")
        if self.minimum_stock < 0:
            raise ValueError(f"minimum_stock cannot be negative (got {self.minimum_stock})")


class CatalogLookup(Protocol):
    """Read-only product/branch lookups.  Snapshots are consistent at call time."""

    def get_product(self, product_id: UUID) -> Product:
        """Return the product or raise ProductNotFoundError."""
        ...

    def get_branch(self, branch_id: UUID) -> Branch:
        """Return the branch or raise BranchNotFoundError."""
        ...

    def list_active_branches(self) -> Sequence[Branch]:
        ...

    def list_active_products(self) -> Sequence[Product]:
        ...


class InMemoryCatalog:
    """Dictionary-backed ``CatalogLookup`` for embedding and tests."""

    def __init__(
        self,
        branches: Sequence[Branch] = (),
        products: Sequence[Product] = (),
    ):
        self._branches: dict[UUID, Branch] = {b.id: b for b in branches}
        self._products: dict[UUID, Product] = {p.id: p for p in products}

    def add_branch(self, branch: Branch) -> Branch:
        self._branches[branch.id] = branch
        return branch

    def add_product(self, product: Product) -> Product:
        self._products[product.id] = product
        return product

    def get_product(self, product_id: UUID) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise ProductNotFoundError(product_id) from None

    def get_branch(self, branch_id: UUID) -> Branch:
        try:
            return self._branches[branch_id]
        except KeyError:
            raise BranchNotFoundError(branch_id) from None

    def list_active_branches(self) -> list[Branch]:
        return sorted(
            (b for b in self._branches.values() if b.is_active),
            key=lambda b: b.code,
        )

    def list_active_products(self) -> list[Product]:
        return sorted(
            (p for p in self._products.values() if p.is_active),
            key=lambda p: p.code,
        )
