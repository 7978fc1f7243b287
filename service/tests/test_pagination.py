import pytest

from core.pagination import DEFAULT_PER_PAGE, MAX_PER_PAGE, paginate


def test_paginate_first_page(make_order):
    orders = [make_order(order_id=str(i)) for i in range(5)]

    page = paginate(orders, page=1, per_page=2, timestamp="2024-07-01T00:00:00.000Z")

    assert page["status"] == "success"
    assert [item["order_id"] for item in page["items"]] == ["0", "1"]
    assert page["totalItems"] == 5
    assert page["totalPages"] == 3
    assert page["hasNext"] is True
    assert page["timestamp"] == "2024-07-01T00:00:00.000Z"


def test_paginate_last_page_has_no_next():
    page = paginate(list(range(5)), page=3, per_page=2)

    assert page["items"] == [4]
    assert page["hasNext"] is False


@pytest.mark.parametrize(
    "page, per_page, expected_page, expected_per_page",
    [
        (0, 10, 1, 10),
        (-4, 10, 1, 10),
        ("2", "3", 2, 3),
        ("abc", "xyz", 1, DEFAULT_PER_PAGE),
        (1, 0, 1, DEFAULT_PER_PAGE),
        (1, -5, 1, 1),
        (1, 10_000, 1, MAX_PER_PAGE),
    ],
)
def test_paginate_clamps_parameters(page, per_page, expected_page, expected_per_page):
    result = paginate(list(range(500)), page=page, per_page=per_page)

    assert result["page"] == expected_page
    assert result["perPage"] == expected_per_page


def test_paginate_page_past_end_is_error():
    result = paginate(list(range(5)), page=4, per_page=2)

    assert result["status"] == "error"
    assert result["message"] == "Page 4 exceeds total pages (3)"
    assert result["items"] == []


def test_paginate_empty_dataset():
    """An empty dataset returns an empty first page, not an error."""
    result = paginate([], page=1)

    assert result["status"] == "success"
    assert result["totalPages"] == 0
    assert result["hasNext"] is False
