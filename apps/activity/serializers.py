"""
Serializers for activity app.
"""
from rest_framework import serializers

from .models import ActivityLog


class ActivityLogSerializer(serializers.ModelSerializer):
    """
    Read-only representation of an activity log entry.

    The batch is exposed by id only, since the batch may no longer exist.
    """
    owner_username = serializers.CharField(source='owner.username', read_only=True)
    action_display = serializers.CharField(source='get_action_display', read_only=True)

    class Meta:
        model = ActivityLog
        fields = [
            'id', 'batch_id', 'batch_number', 'action', 'action_display',
            'details', 'owner', 'owner_username', 'timestamp', 'changes'
        ]
        read_only_fields = fields
