"""
API views for activity app.

The activity log is exposed read-only, newest entries first.
"""
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from pharmacy_stock.pagination import page_params
from .models import ActivityLog
from .serializers import ActivityLogSerializer
from .services import ActivityLogService


class ActivityLogViewSet(viewsets.ReadOnlyModelViewSet):
    """
    List filters: batch_id, batch_number, action, owner.
    """

    queryset = ActivityLog.objects.select_related("owner").all()
    serializer_class = ActivityLogSerializer
    permission_classes = [IsAuthenticated]

    def list(self, request, *args, **kwargs):
        params = request.query_params
        page, page_size = page_params(params)
        action = (params.get("action") or "").upper() or None

        batch_id = params.get("batch_id")
        batch_id = int(batch_id) if batch_id and batch_id.isdigit() else None
        batch_number = params.get("batch_number") or None

        if batch_id is not None or batch_number:
            result = ActivityLogService.query_by_batch(
                batch_id=batch_id,
                batch_number=batch_number,
                action=action,
                page=page,
                page_size=page_size,
            )
        else:
            owner = params.get("owner")
            result = ActivityLogService.query_all(
                action=action,
                owner=int(owner) if owner and owner.isdigit() else None,
                page=page,
                page_size=page_size,
            )

        serializer = ActivityLogSerializer(result["logs"], many=True)
        return Response({"logs": serializer.data, "pagination": result["pagination"]})
