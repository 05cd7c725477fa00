"""Order session state — the one active order, its lines and barcode index.

These are plain in-memory objects with no locking of their own. The
VerificationWorkflow owns the single OrderSession instance and serializes
every mutation through its lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from picking_verifier.domain.enums import SessionPhase
from picking_verifier.domain.exceptions import NotInOrderError, QuantityExceededError

if TYPE_CHECKING:
    from collections.abc import Iterable

ProductId = int | str


@dataclass
class OrderLine:
    """One product line of the active order.

    Attributes:
        product_id: Remote product identifier, unique within the session.
        name: Display description of the line.
        ordered_qty: Quantity the order asks for (>= 1).
        scanned_qty: Units confirmed by scans so far (never above ordered_qty).
        codes: Barcodes that resolve to this line, in insertion order.
    """

    product_id: ProductId
    name: str
    ordered_qty: int
    scanned_qty: int = 0
    codes: list[str] = field(default_factory=list)

    def add_code(self, code: object) -> None:
        """Append a code unless it is empty or already present."""
        if code is None:
            return
        text = str(code).strip()
        if text and text not in self.codes:
            self.codes.append(text)

    @property
    def is_complete(self) -> bool:
        return self.scanned_qty >= self.ordered_qty

    def register_scan(self) -> int:
        """Count one more unit, rejecting scans past the ordered quantity."""
        if self.scanned_qty >= self.ordered_qty:
            raise QuantityExceededError(self.name, self.ordered_qty)
        self.scanned_qty += 1
        return self.scanned_qty

    def to_dict(self) -> dict:
        return {
            "idProduto": self.product_id,
            "nome": self.name,
            "pedido": self.ordered_qty,
            "bipado": self.scanned_qty,
            "codigos": list(self.codes),
        }


class BarcodeIndex:
    """Maps a scanned code to the product id of the line that owns it.

    A code shared by several lines resolves to the last line indexed.
    """

    def __init__(self) -> None:
        self._codes: dict[str, ProductId] = {}

    @classmethod
    def build(cls, lines: Iterable[OrderLine]) -> BarcodeIndex:
        index = cls()
        for line in lines:
            for code in line.codes:
                index._codes[code] = line.product_id
        return index

    def resolve(self, code: str) -> ProductId:
        try:
            return self._codes[code]
        except KeyError:
            raise NotInOrderError(code) from None

    def clear(self) -> None:
        self._codes = {}

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    def __len__(self) -> int:
        return len(self._codes)


class OrderSession:
    """The single active order: identifiers, lines and derived barcode index.

    Populated wholesale by ``replace`` and emptied wholesale by ``clear``;
    the lines and the index always change together.
    """

    def __init__(self) -> None:
        self.remote_order_id: ProductId | None = None
        self.order_number: int | None = None
        self.lines: dict[ProductId, OrderLine] = {}
        self.index = BarcodeIndex()
        self.pending: SessionPhase | None = None

    @property
    def phase(self) -> SessionPhase:
        """Derive the lifecycle phase from the in-flight marker and loaded id."""
        if self.pending is not None:
            return self.pending
        if self.remote_order_id is not None:
            return SessionPhase.LOADED
        return SessionPhase.EMPTY

    @property
    def is_loaded(self) -> bool:
        return self.remote_order_id is not None

    def replace(
        self,
        remote_order_id: ProductId,
        order_number: int,
        lines: Iterable[OrderLine],
    ) -> None:
        """Swap in a freshly loaded order, discarding the previous one."""
        new_lines = {line.product_id: line for line in lines}
        self.lines = new_lines
        self.index = BarcodeIndex.build(new_lines.values())
        self.remote_order_id = remote_order_id
        self.order_number = order_number

    def clear(self) -> None:
        self.lines = {}
        self.index = BarcodeIndex()
        self.remote_order_id = None
        self.order_number = None

    def scan(self, code: str) -> OrderLine:
        """Resolve ``code`` and count one unit on its line."""
        product_id = self.index.resolve(code)
        line = self.lines[product_id]
        line.register_scan()
        return line

    def snapshot(self) -> dict[str, dict]:
        """Return the line map keyed by product id, as sent over the wire."""
        return {str(pid): line.to_dict() for pid, line in self.lines.items()}
