from django.conf import settings
from django.core.paginator import Paginator


def paginate(queryset, page=1, page_size=None):
    """
    Slice an ordered queryset into one page.

    Returns the page rows and a pagination summary. Out of range pages are
    clamped to the nearest valid page.
    """
    try:
        page_size = int(page_size or settings.STOCK_PAGE_SIZE)
    except (TypeError, ValueError):
        page_size = settings.STOCK_PAGE_SIZE
    page_size = max(page_size, 1)

    paginator = Paginator(queryset, page_size)
    page_obj = paginator.get_page(page)
    return list(page_obj.object_list), {
        "current_page": page_obj.number,
        "total_pages": paginator.num_pages,
        "total_items": paginator.count,
        "items_per_page": page_size,
        "has_next_page": page_obj.has_next(),
        "has_prev_page": page_obj.has_previous(),
    }


def page_params(query_params):
    """
    Read ``page`` and ``page_size`` from request query params.
    """
    try:
        page = int(query_params.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(query_params.get("page_size"))
    except (TypeError, ValueError):
        page_size = None
    return page, page_size
