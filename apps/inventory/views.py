"""
API views for inventory app.

Handles the batch lifecycle (draft, finalize, update, delete), batch
activity history and the discard workflow.
"""
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.accounts.permissions import BatchRolePermission, DiscardRolePermission
from apps.activity.serializers import ActivityLogSerializer
from apps.activity.services import ActivityLogService
from .models import Batch
from .serializers import (
    BatchCreateSerializer,
    BatchListSerializer,
    BatchSerializer,
    BatchUpdateSerializer,
    DiscardRecordSerializer,
    DiscardRequestSerializer,
)
from .services import BatchService, DiscardService, retry_on_conflict


def _bool_param(value):
    if value is None or value == "":
        return None
    return str(value).lower() in ("1", "true", "yes")


def _int_param(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class BatchViewSet(viewsets.ModelViewSet):
    """
    ViewSet for purchase batches.

    Write operations go through BatchService so that every mutation is
    logged. WriteConflict is retried a bounded number of times.
    """

    queryset = Batch.objects.select_related("created_by").prefetch_related("medicines")
    permission_classes = [BatchRolePermission]
    lookup_value_regex = r"\d+"

    def get_serializer_class(self):
        if self.action == "list":
            return BatchListSerializer
        if self.action in ("create", "add_to_stock"):
            return BatchCreateSerializer
        if self.action in ("update", "partial_update"):
            return BatchUpdateSerializer
        return BatchSerializer

    def _detail(self, batch, status_code=status.HTTP_200_OK):
        batch = BatchService.get(batch.pk)
        return Response(BatchSerializer(batch).data, status=status_code)

    def list(self, request, *args, **kwargs):
        result = BatchService.list(
            is_draft=_bool_param(request.query_params.get("is_draft")),
            search=request.query_params.get("search") or None,
            page=_int_param(request.query_params.get("page"), 1),
            page_size=_int_param(request.query_params.get("page_size")),
        )
        serializer = BatchListSerializer(result["batches"], many=True)
        return Response({"batches": serializer.data, "pagination": result["pagination"]})

    def retrieve(self, request, *args, **kwargs):
        batch = BatchService.get(kwargs["pk"])
        return Response(BatchSerializer(batch).data)

    def create(self, request, *args, **kwargs):
        serializer = BatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = BatchService.create_draft(actor=request.user, **serializer.validated_data)
        return self._detail(batch, status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        serializer = BatchUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        patch = dict(serializer.validated_data)
        expected_version = patch.pop("version", None)
        if "medicines" in patch:
            patch["medicines"] = [dict(item) for item in patch["medicines"]]

        batch = retry_on_conflict(
            BatchService.update,
            actor=request.user,
            batch_id=kwargs["pk"],
            patch=patch,
            expected_version=expected_version,
        )
        return self._detail(batch)

    def destroy(self, request, *args, **kwargs):
        retry_on_conflict(
            BatchService.delete,
            actor=request.user,
            batch_id=kwargs["pk"],
            expected_version=_int_param(request.query_params.get("version")),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["post"], url_path="add-to-stock")
    def add_to_stock(self, request):
        serializer = BatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = BatchService.add_to_stock(actor=request.user, **serializer.validated_data)
        return self._detail(batch, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def finalize(self, request, pk=None):
        batch = retry_on_conflict(
            BatchService.finalize,
            actor=request.user,
            batch_id=pk,
            expected_version=request.data.get("version"),
        )
        return self._detail(batch)

    @action(detail=False, methods=["get"], url_path=r"by-number/(?P<batch_number>[^/]+)")
    def by_number(self, request, batch_number=None):
        batch = BatchService.get_by_number(batch_number)
        return Response(BatchSerializer(batch).data)

    @action(detail=True, methods=["get"])
    def activity(self, request, pk=None):
        result = ActivityLogService.query_by_batch(
            batch_id=int(pk),
            page=_int_param(request.query_params.get("page"), 1),
            page_size=_int_param(request.query_params.get("page_size")),
        )
        serializer = ActivityLogSerializer(result["logs"], many=True)
        return Response({"logs": serializer.data, "pagination": result["pagination"]})


class DiscardViewSet(viewsets.ViewSet):
    """
    POST discards stock, GET lists discard history with a summary.
    """

    permission_classes = [DiscardRolePermission]

    def create(self, request):
        serializer = DiscardRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        records = retry_on_conflict(
            DiscardService.discard,
            actor=request.user,
            medicine_id=data["medicine_id"],
            quantity=data["quantity"],
            reason=data.get("reason"),
            batch_id=data.get("batch_id"),
        )
        return Response(
            {
                "records": DiscardRecordSerializer(records, many=True).data,
                "total_discarded": sum(record.quantity_discarded for record in records),
            },
            status=status.HTTP_201_CREATED,
        )

    def list(self, request):
        params = request.query_params
        result = DiscardService.discard_history(
            search=params.get("search") or None,
            medicine_id=_int_param(params.get("medicine_id")),
            user_id=_int_param(params.get("user_id")),
            date_from=params.get("date_from") or None,
            date_to=params.get("date_to") or None,
            page=_int_param(params.get("page"), 1),
            page_size=_int_param(params.get("page_size")),
        )
        return Response({
            "records": DiscardRecordSerializer(result["records"], many=True).data,
            "summary": result["summary"],
            "pagination": result["pagination"],
        })
