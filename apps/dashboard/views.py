"""
API views for dashboard app.

Read-only stock reports. Each request computes its report from a single
consistent snapshot of finalized batches.
"""
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from pharmacy_stock.pagination import page_params
from .services import StockAggregationService


def _listing_params(request, default_sort):
    params = request.query_params
    page, page_size = page_params(params)
    return {
        "search": params.get("search") or None,
        "sort_by": params.get("sort_by", default_sort),
        "sort_order": params.get("sort_order", "asc").lower(),
        "page": page,
        "page_size": page_size,
    }


class DashboardViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]

    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(StockAggregationService.dashboard_stats())

    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        rows = StockAggregationService.low_stock_report()
        return Response({"count": len(rows), "medicines": rows})

    @action(detail=False, methods=["get"])
    def expiry(self, request):
        return Response(StockAggregationService.expiry_report())

    @action(detail=False, methods=["get"])
    def expired(self, request):
        return Response(StockAggregationService.expired_medicines(
            **_listing_params(request, "earliest_expiry_date")
        ))

    @action(detail=False, methods=["get"])
    def stock(self, request):
        return Response(StockAggregationService.medicine_stock_list(
            **_listing_params(request, "medicine_name")
        ))

    @action(detail=False, methods=["get"], url_path=r"stock/(?P<medicine_id>\d+)")
    def stock_detail(self, request, medicine_id=None):
        page, page_size = page_params(request.query_params)
        return Response(StockAggregationService.medicine_stock_detail(
            int(medicine_id), page=page, page_size=page_size
        ))

    @action(detail=False, methods=["get"])
    def trends(self, request):
        granularity = request.query_params.get("granularity", "month")
        periods = request.query_params.get("periods")
        if periods is not None:
            try:
                periods = int(periods)
            except ValueError:
                periods = -1
        series = StockAggregationService.trend_series(granularity, periods=periods)
        return Response({"granularity": granularity, "series": series})

    @action(detail=False, methods=["get"], url_path="top-stocked")
    def top_stocked(self, request):
        try:
            limit = int(request.query_params.get("limit", 5))
        except ValueError:
            limit = 5
        rows = StockAggregationService.top_stocked(limit=limit)
        return Response({"medicines": rows})
