from highlights import fetch_highlighted_products, merge_highlighted, normalize_product_id
from schemas import Product


def p(pid, seller):
    return Product(_id=pid.lower(), product_id=pid, name=pid, seller=seller)


def test_merge_dedupes_in_first_seen_order():
    lists = [
        [p("A", "s1"), p("B", "s1")],
        [p("B", "s2"), p("C", "s2")],
        [p("c", "s3"), p("D", "s3"), p("A", "s3")],
    ]
    merged = merge_highlighted(lists)
    assert [x.product_id for x in merged] == ["A", "B", "C", "D"]
    assert merged[1].seller == "s1"
    assert len(merged) <= sum(len(x) for x in lists)


def test_merge_empty():
    assert merge_highlighted([]) == []
    assert merge_highlighted([[], []]) == []


def test_normalize_product_id():
    assert normalize_product_id("  shoe01 ") == "SHOE01"
    assert normalize_product_id(None) == ""


def test_fetch_across_three_sellers(api, backend):
    products = fetch_highlighted_products(api, ["s1", "s2", "s3"])
    assert [x.product_id for x in products] == ["TSHIRT01", "SHOE01", "MUG01"]


def test_seller_failure_is_skipped(api, backend):
    backend.fail("GET", "/highlighted-products/seller/s1", 500, {"error": "down"})
    products = fetch_highlighted_products(api, ["s1", "s3"])
    assert [x.product_id for x in products] == ["MUG01", "TSHIRT01"]
