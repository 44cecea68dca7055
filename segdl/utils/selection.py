"""
Resolves playlist item-selection expressions into explicit 1-based indices.
"""


def need_download_list(
    items: str, item_start: int = 1, item_end: int = 0, length: int = 0
) -> list[int]:
    """
    Returns the 1-based playlist indices to download.

    ``"1,5,6,8-10"`` -> ``[1, 5, 6, 8, 9, 10]``. Without an expression the
    range ``item_start..item_end`` is used, where ``item_end == 0`` means the
    whole playlist (``length``).

    Raises:
        ValueError: If the expression contains something that is not a number.
    """
    if items.strip():
        return _parse_items(items)

    if item_start < 1:
        item_start = 1
    if item_end == 0:
        item_end = length
    if item_end < item_start:
        item_start, item_end = item_end, item_start
    return list(range(item_start, item_end + 1))


def _parse_items(items: str) -> list[int]:
    selected = []
    for selection in items.split(","):
        if not selection.strip():
            continue
        bounds = selection.split("-")
        sel_start = int(bounds[0].strip())
        sel_end = int(bounds[1].strip()) if len(bounds) >= 2 else sel_start
        selected.extend(range(sel_start, sel_end + 1))
    return selected


def select_items(values: list, items: str, item_start: int = 1, item_end: int = 0) -> list:
    """Keeps the elements of ``values`` whose 1-based position was selected."""
    wanted = set(need_download_list(items, item_start, item_end, len(values)))
    return [value for i, value in enumerate(values, start=1) if i in wanted]
