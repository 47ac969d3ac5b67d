"""
Serializers for medicines app.

Handles serialization/deserialization of the Medicine catalog.
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import Medicine
from .services import MedicineService


class MedicineSerializer(serializers.ModelSerializer):
    """
    Serializer for Medicine model.
    """

    class Meta:
        model = Medicine
        fields = [
            'id', 'name', 'description', 'category', 'manufacturer',
            'reorder_level', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def create(self, validated_data):
        try:
            return MedicineService.create_medicine(medicine_data=validated_data)
        except DjangoValidationError as exc:
            if hasattr(exc, "message_dict"):
                raise serializers.ValidationError(exc.message_dict)
            raise serializers.ValidationError({"detail": exc.messages})

    def update(self, instance, validated_data):
        try:
            return MedicineService.update_medicine(instance, medicine_data=validated_data)
        except DjangoValidationError as exc:
            if hasattr(exc, "message_dict"):
                raise serializers.ValidationError(exc.message_dict)
            raise serializers.ValidationError({"detail": exc.messages})


class MedicineListSerializer(serializers.ModelSerializer):
    """
    Simplified serializer for medicine list and dropdown views.
    """

    class Meta:
        model = Medicine
        fields = ['id', 'name', 'category', 'manufacturer', 'reorder_level', 'is_active']


class MedicineBulkCreateSerializer(serializers.Serializer):
    """
    Bulk import payload. Rows are validated one by one by the service.
    """
    medicines = serializers.ListField(child=serializers.DictField(), allow_empty=False)
