import pytest

from vpnpass.conversation.pagination import paginate, total_pages


def test_twenty_five_items_split_ten_ten_five():
    items = list(range(25))

    sizes = [len(paginate(items, n, 10).items) for n in (1, 2, 3)]

    assert sizes == [10, 10, 5]
    assert paginate(items, 3, 10).items == tuple(range(20, 25))


@pytest.mark.parametrize("requested, expected", [(0, 1), (-5, 1), (4, 3), (99, 3)])
def test_page_number_is_clamped(requested, expected):
    page = paginate(list(range(25)), requested, 10)

    assert page.number == expected


def test_empty_listing_has_one_empty_page():
    page = paginate([], 1, 10)

    assert page.items == ()
    assert page.total_pages == 1
    assert not page.has_prev and not page.has_next


def test_navigation_flags():
    items = list(range(25))

    assert paginate(items, 1, 10).has_next and not paginate(items, 1, 10).has_prev
    assert paginate(items, 2, 10).has_prev and paginate(items, 2, 10).has_next
    assert not paginate(items, 3, 10).has_next


def test_total_pages():
    assert total_pages(0, 10) == 1
    assert total_pages(10, 10) == 1
    assert total_pages(11, 10) == 2
