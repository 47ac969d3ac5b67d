"""
API views for medicines app.

Handles CRUD operations for the medicine catalog. Deleting a medicine
deactivates it.
"""
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.accounts.permissions import MedicineRolePermission
from pharmacy_stock.pagination import page_params, paginate
from .models import Medicine
from .serializers import MedicineBulkCreateSerializer, MedicineListSerializer, MedicineSerializer
from .services import MedicineService


class MedicineViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Medicine model.

    Provides CRUD operations for medicines with filtering and search.
    """

    queryset = Medicine.objects.all()
    permission_classes = [MedicineRolePermission]
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ["name", "category", "manufacturer", "description"]
    ordering_fields = ["name", "reorder_level", "created_at"]
    ordering = ["name"]

    def get_serializer_class(self):
        if self.action in ("list", "dropdown"):
            return MedicineListSerializer
        return MedicineSerializer

    def get_queryset(self):
        queryset = super().get_queryset()

        is_active = self.request.query_params.get("is_active")
        if is_active == "true":
            queryset = queryset.filter(is_active=True)
        elif is_active == "false":
            queryset = queryset.filter(is_active=False)

        category = self.request.query_params.get("category")
        if category:
            queryset = queryset.filter(category__iexact=category)

        return queryset

    def list(self, request, *args, **kwargs):
        page, page_size = page_params(request.query_params)
        medicines, pagination = paginate(self.filter_queryset(self.get_queryset()), page, page_size)
        serializer = self.get_serializer(medicines, many=True)
        return Response({"medicines": serializer.data, "pagination": pagination})

    def destroy(self, request, *args, **kwargs):
        medicine = MedicineService.deactivate(self.get_object())
        serializer = MedicineSerializer(medicine, context=self.get_serializer_context())
        return Response(serializer.data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"])
    def dropdown(self, request):
        medicines = Medicine.objects.active().order_by("name")
        serializer = self.get_serializer(medicines, many=True)
        return Response({"count": len(serializer.data), "medicines": serializer.data})

    @action(detail=False, methods=["post"])
    def bulk(self, request):
        serializer = MedicineBulkCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        results = MedicineService.create_medicines(items=serializer.validated_data["medicines"])

        created = MedicineSerializer(results["created"], many=True, context=self.get_serializer_context()).data
        return Response({
            "created_count": len(created),
            "failed_count": len(results["failed"]),
            "duplicate_count": len(results["duplicates"]),
            "created": created,
            "failed": results["failed"],
            "duplicates": results["duplicates"],
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)
