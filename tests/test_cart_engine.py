from __future__ import annotations

from decimal import Decimal

import pytest

from shared.constants import ItemSize
from storefront_client.cart import CartEngine
from storefront_client.storage import LocalStorage

CUPCAKE = {"id": 1, "name": "Cupcake", "price": "50.00"}
DONUT = {"id": 2, "name": "Donut", "price": 80}


@pytest.fixture
def cart() -> CartEngine:
    return CartEngine()


def _quantities(cart: CartEngine) -> dict[str, int]:
    return {line.line_key: line.quantity for line in cart.lines}


def test_add_item_creates_selected_line_with_key() -> None:
    cart = CartEngine()
    cart.add_item(CUPCAKE)

    (line,) = cart.lines
    assert line.line_key == "1|Regular"
    assert line.quantity == 1
    assert line.is_selected
    assert line.derived_price == Decimal("50")


def test_large_size_costs_one_and_a_half_times_base(cart: CartEngine) -> None:
    cart.add_item(DONUT, size=ItemSize.LARGE)
    assert cart.get_line("2|Large").derived_price == Decimal("120")


def test_repeated_adds_merge_into_one_line(cart: CartEngine) -> None:
    for quantity in (1, 3, 2):
        cart.add_item(CUPCAKE, quantity=quantity)

    assert _quantities(cart) == {"1|Regular": 6}


def test_same_product_different_size_gets_own_line(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.add_item(CUPCAKE, size="Large")
    assert _quantities(cart) == {"1|Regular": 1, "1|Large": 1}


def test_adding_existing_line_reselects_it(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.toggle_selection("1|Regular")
    assert not cart.get_line("1|Regular").is_selected

    cart.add_item(CUPCAKE)
    line = cart.get_line("1|Regular")
    assert line.is_selected
    assert line.quantity == 2


def test_set_quantity_updates_and_below_one_removes(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.set_quantity("1|Regular", 40)
    assert cart.get_line("1|Regular").quantity == 40

    cart.set_quantity("1|Regular", 0)
    assert cart.lines == ()


def test_remove_item(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.add_item(DONUT)
    cart.remove_item("1|Regular")
    assert list(_quantities(cart)) == ["2|Regular"]


def test_unknown_line_key_is_a_no_op(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    before = cart.lines

    cart.remove_item("99|Regular")
    cart.set_quantity("99|Regular", 3)
    cart.set_size("99|Regular", ItemSize.LARGE)
    cart.toggle_selection("99|Regular")

    assert cart.lines == before


def test_set_size_relabels_line_and_reprices(cart: CartEngine) -> None:
    cart.add_item(DONUT, quantity=2)
    cart.set_size("2|Regular", ItemSize.LARGE)

    assert cart.get_line("2|Regular") is None
    line = cart.get_line("2|Large")
    assert line.quantity == 2
    assert line.derived_price == Decimal("120")


def test_set_size_to_same_size_changes_nothing(cart: CartEngine) -> None:
    cart.add_item(DONUT)
    cart.toggle_selection("2|Regular")
    cart.set_size("2|Regular", ItemSize.REGULAR)
    assert not cart.get_line("2|Regular").is_selected


def test_set_size_collision_merges_and_conserves_quantity(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE, quantity=2)
    cart.add_item(CUPCAKE, quantity=3, size=ItemSize.LARGE)
    cart.toggle_selection("1|Large")

    cart.set_size("1|Regular", ItemSize.LARGE)

    assert _quantities(cart) == {"1|Large": 5}
    assert cart.get_line("1|Large").is_selected


def test_subtotal_counts_only_selected_lines(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE, quantity=2)
    cart.add_item(DONUT, quantity=1, size=ItemSize.LARGE)
    assert cart.subtotal == Decimal("220")

    cart.toggle_selection("2|Large")
    assert cart.subtotal == Decimal("100")

    cart.set_quantity("2|Large", 10)
    assert cart.subtotal == Decimal("100")


def test_odd_cent_large_price_is_rounded_like_checkout(cart: CartEngine) -> None:
    cart.add_item({"id": 9, "name": "Pandesal", "price": "33.33"}, quantity=3, size=ItemSize.LARGE)

    line = cart.get_line("9|Large")
    assert line.derived_price == Decimal("50.00")
    assert cart.subtotal == Decimal("150.00")


def test_select_all_toggles_inverse_of_all_selected(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.add_item(DONUT)

    cart.select_all()
    assert not any(line.is_selected for line in cart.lines)

    cart.select_all()
    assert all(line.is_selected for line in cart.lines)


def test_select_all_from_mixed_state_selects_everything(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.add_item(DONUT)
    cart.toggle_selection("1|Regular")

    cart.select_all()
    cart.select_all()

    # Not a round trip: the mixed starting state is lost
    assert not any(line.is_selected for line in cart.lines)


def test_select_all_with_explicit_value(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.select_all(True)
    assert cart.all_selected
    cart.select_all(False)
    assert cart.selected_lines == ()


def test_clear_selected_keeps_unselected_lines(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.add_item(DONUT)
    cart.toggle_selection("2|Regular")

    cart.clear_selected()
    assert list(_quantities(cart)) == ["2|Regular"]


def test_clear_all(cart: CartEngine) -> None:
    cart.add_item(CUPCAKE)
    cart.add_item(DONUT)
    cart.clear_all()
    assert cart.lines == ()
    assert cart.subtotal == Decimal("0")


def test_subscribers_receive_each_new_state(cart: CartEngine) -> None:
    seen = []
    unsubscribe = cart.subscribe(seen.append)

    cart.add_item(CUPCAKE)
    cart.set_quantity("1|Regular", 4)
    unsubscribe()
    cart.clear_all()

    assert [[line.quantity for line in state] for state in seen] == [[1], [4]]


def test_cart_survives_reload(tmp_path) -> None:
    path = tmp_path / "storage.json"
    cart = CartEngine(LocalStorage(path))
    cart.add_item(CUPCAKE, quantity=2)
    cart.add_item(DONUT, size=ItemSize.LARGE)
    cart.toggle_selection("2|Large")

    reloaded = CartEngine(LocalStorage(path))
    assert reloaded.lines == cart.lines
    assert reloaded.subtotal == Decimal("100")


def test_corrupt_saved_cart_loads_empty(tmp_path) -> None:
    storage = LocalStorage(tmp_path / "storage.json")
    storage.set_item("cart", "{not json")

    assert CartEngine(storage).lines == ()
