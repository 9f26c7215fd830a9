"""Client-side shopping cart state container.

Every mutation builds a new list of lines, persists it and notifies
subscribers. Operations on an unknown line key are logged and ignored.
"""
import json
import logging
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from shared.constants import ItemSize
from storefront_client.models import CartLine, make_line_key
from storefront_client.storage import LocalStorage

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"

Listener = Callable[[Tuple[CartLine, ...]], None]

class CartEngine:
    def __init__(self, storage: Optional[LocalStorage] = None, storage_key: str = CART_STORAGE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self._listeners: List[Listener] = []
        self._lines: Tuple[CartLine, ...] = self._restore()

    # --- State ---
    @property
    def lines(self) -> Tuple[CartLine, ...]:
        return self._lines

    def get_line(self, line_key: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.line_key == line_key:
                return line
        return None

    @property
    def selected_lines(self) -> Tuple[CartLine, ...]:
        return tuple(line for line in self._lines if line.is_selected)

    @property
    def subtotal(self) -> Decimal:
        """Sum of derived price times quantity over selected lines."""
        return sum((line.line_total for line in self.selected_lines), Decimal("0"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def all_selected(self) -> bool:
        return all(line.is_selected for line in self._lines)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new lines after every change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Mutations ---
    def add_item(self, product: dict, quantity: int = 1, size: ItemSize = ItemSize.REGULAR):
        """Add ``quantity`` units of ``product`` in ``size``.

        ``product`` is a catalogue record with at least ``id``, ``name`` and
        ``price``. Adding a product+size already in the cart increases that
        line's quantity and selects it.
        """
        if quantity < 1:
            logger.debug("Ignoring add of %s units", quantity)
            return
        size = ItemSize(size)
        product_id = str(product["id"])
        key = make_line_key(product_id, size)

        if self.get_line(key):
            lines = [
                line.model_copy(update={"quantity": line.quantity + quantity, "is_selected": True})
                if line.line_key == key else line
                for line in self._lines
            ]
        else:
            new_line = CartLine(
                product_id=product_id,
                name=product["name"],
                base_price=Decimal(str(product["price"])),
                size=size,
                quantity=quantity,
                is_selected=True,
                image_url=product.get("image_url") or product.get("imageUrl"),
                category=product.get("category"),
            )
            lines = list(self._lines) + [new_line]
        self._commit(lines)

    def remove_item(self, line_key: str):
        if not self.get_line(line_key):
            logger.debug("remove_item: no line %s", line_key)
            return
        self._commit([line for line in self._lines if line.line_key != line_key])

    def set_quantity(self, line_key: str, quantity: int):
        if quantity < 1:
            return self.remove_item(line_key)
        if not self.get_line(line_key):
            logger.debug("set_quantity: no line %s", line_key)
            return
        self._commit([
            line.model_copy(update={"quantity": quantity}) if line.line_key == line_key else line
            for line in self._lines
        ])

    def set_size(self, line_key: str, new_size: ItemSize):
        source = self.get_line(line_key)
        if not source:
            logger.debug("set_size: no line %s", line_key)
            return
        new_size = ItemSize(new_size)
        if source.size == new_size:
            return

        target_key = make_line_key(source.product_id, new_size)
        if self.get_line(target_key):
            # Merge into the existing line of the target size
            lines = [
                line.model_copy(update={"quantity": line.quantity + source.quantity, "is_selected": True})
                if line.line_key == target_key else line
                for line in self._lines
                if line.line_key != line_key
            ]
        else:
            lines = [
                line.model_copy(update={"size": new_size, "is_selected": True})
                if line.line_key == line_key else line
                for line in self._lines
            ]
        self._commit(lines)

    def toggle_selection(self, line_key: str):
        if not self.get_line(line_key):
            logger.debug("toggle_selection: no line %s", line_key)
            return
        self._commit([
            line.model_copy(update={"is_selected": not line.is_selected})
            if line.line_key == line_key else line
            for line in self._lines
        ])

    def select_all(self, selected: Optional[bool] = None):
        """Select or deselect every line.

        With no argument, selects everything unless every line is already
        selected, in which case everything is deselected.
        """
        if selected is None:
            selected = not self.all_selected
        self._commit([line.model_copy(update={"is_selected": selected}) for line in self._lines])

    def clear_all(self):
        self._commit([])

    def clear_selected(self):
        self._commit([line for line in self._lines if not line.is_selected])

    # --- Persistence ---
    def _commit(self, lines: List[CartLine]):
        self._lines = tuple(lines)
        self._persist()
        for listener in list(self._listeners):
            listener(self._lines)

    def _persist(self):
        if self.storage is None:
            return
        payload = [line.model_dump(mode="json") for line in self._lines]
        self.storage.set_item(self.storage_key, json.dumps(payload))

    def _restore(self) -> Tuple[CartLine, ...]:
        if self.storage is None:
            return ()
        raw = self.storage.get_item(self.storage_key)
        if not raw:
            return ()
        try:
            lines = tuple(CartLine(**entry) for entry in json.loads(raw))
        except (ValueError, TypeError, ValidationError):
            logger.warning("Discarding unreadable saved cart")
            return ()

        # Saved data from older versions may hold duplicate keys
        merged = {}
        for line in lines:
            if line.line_key in merged:
                existing = merged[line.line_key]
                line = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
            merged[line.line_key] = line
        return tuple(merged.values())
