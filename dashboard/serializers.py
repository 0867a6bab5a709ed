from rest_framework import serializers
from django.utils import timezone
from datetime import timedelta

MAX_RANGE_DAYS = 366


class DateRangeSerializer(serializers.Serializer):
    """Query parameters for ranged reports; defaults to the last seven days"""
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        end_date = attrs.get('end_date') or timezone.localdate()
        start_date = attrs.get('start_date') or end_date - timedelta(days=6)
        if end_date < start_date:
            raise serializers.ValidationError({'end_date': 'Must be on or after start_date'})
        if (end_date - start_date).days >= MAX_RANGE_DAYS:
            raise serializers.ValidationError(f'Date range cannot exceed {MAX_RANGE_DAYS} days')
        attrs['start_date'] = start_date
        attrs['end_date'] = end_date
        return attrs


class SalesQuerySerializer(DateRangeSerializer):
    top = serializers.IntegerField(required=False, default=10, min_value=1, max_value=50)


class DaybookQuerySerializer(DateRangeSerializer):
    # ``format`` is taken by DRF's renderer override, hence file_type
    file_type = serializers.ChoiceField(choices=['excel', 'pdf'], required=False, default='excel')
    include_cancelled = serializers.BooleanField(required=False, default=True)
