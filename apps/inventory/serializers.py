"""
Serializers for inventory app.

Handles serialization of batches, their medicine line items and discard
records. Writes are validated here for shape only; the services enforce
the batch rules.
"""
from rest_framework import serializers

from .models import Batch, BatchMedicine, DiscardRecord


class BatchMedicineSerializer(serializers.ModelSerializer):
    """
    Line item representation, nested in a batch.
    """
    medicine_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = BatchMedicine
        fields = [
            'medicine_id', 'medicine_name', 'quantity', 'price', 'expiry_date',
            'date_of_purchase', 'reorder_level', 'total_amount'
        ]
        read_only_fields = fields


class BatchMedicineInputSerializer(serializers.Serializer):
    medicine_id = serializers.IntegerField()
    quantity = serializers.IntegerField(required=False)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    expiry_date = serializers.DateField(required=False, allow_null=True)
    date_of_purchase = serializers.DateField(required=False, allow_null=True)
    reorder_level = serializers.IntegerField(required=False, min_value=0)


class BatchSerializer(serializers.ModelSerializer):
    """
    Full batch representation with line items.
    """
    medicines = serializers.SerializerMethodField()
    created_by_username = serializers.CharField(source='created_by.username', read_only=True)
    total_quantity = serializers.SerializerMethodField()

    class Meta:
        model = Batch
        fields = [
            'id', 'batch_number', 'bill_id', 'medicines', 'total_quantity',
            'overall_price', 'miscellaneous_amount', 'attachments',
            'is_draft', 'draft_note', 'finalized_at',
            'created_by', 'created_by_username', 'created_at', 'updated_at', 'version'
        ]
        read_only_fields = fields

    def get_medicines(self, obj):
        lines = sorted(obj.medicines.all(), key=lambda line: (line.position, line.id))
        return BatchMedicineSerializer(lines, many=True).data

    def get_total_quantity(self, obj):
        return sum(line.quantity for line in obj.medicines.all())


class BatchListSerializer(serializers.ModelSerializer):
    """
    Simplified serializer for batch list views.
    """
    medicines_count = serializers.SerializerMethodField()

    class Meta:
        model = Batch
        fields = [
            'id', 'batch_number', 'bill_id', 'medicines_count', 'overall_price',
            'miscellaneous_amount', 'is_draft', 'finalized_at', 'created_at', 'version'
        ]

    def get_medicines_count(self, obj):
        return len(obj.medicines.all())


class BatchCreateSerializer(serializers.Serializer):
    batch_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    bill_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    medicines = BatchMedicineInputSerializer(many=True, required=False, default=list)
    miscellaneous_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, default=0
    )
    attachments = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    draft_note = serializers.CharField(required=False, allow_blank=True, default="")


class BatchUpdateSerializer(serializers.Serializer):
    """
    Partial batch update. Only fields present in the request are applied.
    """
    batch_number = serializers.CharField(max_length=100, required=False)
    bill_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    medicines = BatchMedicineInputSerializer(many=True, required=False)
    miscellaneous_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    attachments = serializers.ListField(child=serializers.CharField(), required=False)
    draft_note = serializers.CharField(required=False, allow_blank=True)
    is_draft = serializers.BooleanField(required=False)
    version = serializers.IntegerField(required=False, min_value=1)


class DiscardRequestSerializer(serializers.Serializer):
    medicine_id = serializers.IntegerField()
    quantity = serializers.IntegerField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)
    batch_id = serializers.IntegerField(required=False, allow_null=True)


class DiscardRecordSerializer(serializers.ModelSerializer):
    """
    Serializer for DiscardRecord model.
    """
    batch_id = serializers.IntegerField(read_only=True)
    medicine_id = serializers.IntegerField(read_only=True)
    discarded_by_username = serializers.CharField(source='discarded_by.username', read_only=True)

    class Meta:
        model = DiscardRecord
        fields = [
            'id', 'medicine_id', 'medicine_name', 'batch_id', 'batch_number',
            'quantity_discarded', 'price_per_unit', 'total_value', 'expiry_date',
            'discarded_by', 'discarded_by_username', 'discarded_at', 'reason'
        ]
        read_only_fields = fields
