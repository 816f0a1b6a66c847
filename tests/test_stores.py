import json
import random

from checkout import compute_totals
from errors import StorageError
from stores import CartStore, MemoryStateStorage, MongoStateStorage, StateStorage, WishlistStore


class BrokenStorage(StateStorage):
    def get(self, key):
        raise StorageError("storage unavailable")

    def set(self, key, value):
        raise StorageError("storage unavailable")

    def remove(self, key):
        raise StorageError("storage unavailable")


def test_adding_same_product_increments_quantity(make_product):
    cart = CartStore(MemoryStateStorage())
    ring = make_product()
    cart.add_item(ring)
    cart.add_item(ring, 2)

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.item_count == 3


def test_random_mutations_keep_cart_consistent(make_product):
    rng = random.Random(7)
    products = [make_product(price=rng.randint(1000, 90000), making_charges_saved=rng.randint(0, 5000))
                for _ in range(5)]
    cart = CartStore(MemoryStateStorage())
    expected = {}

    for _ in range(300):
        product = rng.choice(products)
        op = rng.choice(["add", "remove", "update"])
        if op == "add":
            qty = rng.randint(1, 3)
            cart.add_item(product, qty)
            expected[product.id] = expected.get(product.id, 0) + qty
        elif op == "remove":
            cart.remove_item(product.id)
            expected.pop(product.id, None)
        else:
            qty = rng.randint(-2, 4)
            cart.update_quantity(product.id, qty)
            if qty <= 0:
                expected.pop(product.id, None)
            elif product.id in expected:
                expected[product.id] = qty

        ids = [item.product.id for item in cart.items]
        assert len(ids) == len(set(ids))
        assert cart.item_count == sum(item.quantity for item in cart.items)

        by_id = {p.id: p for p in products}
        assert {item.product.id: item.quantity for item in cart.items} == expected
        assert cart.subtotal == sum(by_id[pid].price * q for pid, q in expected.items())
        assert cart.total_savings == sum(by_id[pid].making_charges_saved * q for pid, q in expected.items())


def test_update_quantity_zero_or_negative_removes(make_product):
    for qty in (0, -5):
        cart = CartStore(MemoryStateStorage())
        ring = make_product()
        cart.add_item(ring, 2)
        cart.update_quantity(ring.id, qty)
        assert cart.is_empty()
        assert cart.get_item(ring.id) is None


def test_add_item_ignores_non_positive_quantity(make_product):
    cart = CartStore(MemoryStateStorage())
    cart.add_item(make_product(), 0)
    assert cart.is_empty()


def test_scenario_totals(make_product):
    cart = CartStore(MemoryStateStorage())
    cart.add_item(make_product(price=10000, mrp=12000, making_charges_saved=2000), 2)
    cart.add_item(make_product(price=5000, mrp=5000, making_charges_saved=0), 1)

    assert cart.subtotal == 25000
    assert cart.total_savings == 4000
    assert compute_totals(cart, 200).total == 25200


def test_empty_cart_has_no_shipping():
    totals = compute_totals(CartStore(MemoryStateStorage()), 200)
    assert totals.shipping_cost == 0
    assert totals.total == 0


def test_items_are_copies(make_product):
    cart = CartStore(MemoryStateStorage())
    ring = make_product()
    cart.add_item(ring)
    cart.items[0].quantity = 99
    assert cart.item_count == 1


def test_cart_rehydrates_from_storage(make_product):
    storage = MemoryStateStorage()
    cart = CartStore(storage)
    cart.add_item(make_product(name="Temple Necklace", category="necklace"), 2)

    restored = CartStore(storage)
    assert restored.item_count == 2
    assert restored.items[0].product.name == "Temple Necklace"
    assert json.loads(storage.get("cart-storage"))["items"][0]["quantity"] == 2


def test_cart_persists_in_mongo(db, make_product):
    cart = CartStore(MongoStateStorage(db, "shopper-a"))
    cart.add_item(make_product(), 3)

    assert CartStore(MongoStateStorage(db, "shopper-a")).item_count == 3
    assert CartStore(MongoStateStorage(db, "shopper-b")).is_empty()


def test_storage_failure_keeps_memory_state(make_product):
    cart = CartStore(BrokenStorage())
    cart.add_item(make_product(), 2)
    assert cart.item_count == 2


def test_corrupt_blob_is_discarded():
    storage = MemoryStateStorage()
    storage.set("cart-storage", "{not json")
    storage.set("wishlist-storage", json.dumps({"items": [{"name": "missing fields"}]}))

    assert CartStore(storage).is_empty()
    assert WishlistStore(storage).items == []


def test_wishlist_add_is_idempotent(make_product):
    wishlist = WishlistStore(MemoryStateStorage())
    ring = make_product()
    wishlist.add_item(ring)
    wishlist.add_item(ring)
    assert len(wishlist.items) == 1


def test_wishlist_toggle_is_its_own_inverse(make_product):
    wishlist = WishlistStore(MemoryStateStorage())
    kept = make_product(name="Kept Pendant", category="pendant")
    wishlist.add_item(kept)
    ring = make_product()
    before = [p.id for p in wishlist.items]

    assert wishlist.toggle_item(ring) is True
    assert wishlist.is_in_wishlist(ring.id)
    assert wishlist.toggle_item(ring) is False
    assert not wishlist.is_in_wishlist(ring.id)
    assert [p.id for p in wishlist.items] == before


def test_wishlist_remove_and_clear_persist(make_product):
    storage = MemoryStateStorage()
    wishlist = WishlistStore(storage)
    a, b = make_product(), make_product()
    wishlist.add_item(a)
    wishlist.add_item(b)
    wishlist.remove_item(a.id)
    assert [p.id for p in WishlistStore(storage).items] == [b.id]

    wishlist.clear_wishlist()
    assert WishlistStore(storage).items == []
