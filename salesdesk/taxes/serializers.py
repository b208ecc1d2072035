from rest_framework import serializers
from .models import Iva, Retencion


class RateSerializer(serializers.ModelSerializer):
    """Shared validation for percentage rate tables"""

    def validate_rate(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError("Rate must be between 0 and 100")
        return value


class IvaSerializer(RateSerializer):
    class Meta:
        model = Iva
        fields = ['id', 'name', 'rate', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class RetencionSerializer(RateSerializer):
    class Meta:
        model = Retencion
        fields = ['id', 'name', 'rate', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
