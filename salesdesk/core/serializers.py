from rest_framework import serializers
from .models import User


class CashierSerializer(serializers.ModelSerializer):
    """Who is selling, as shown in the sales screen header"""
    nombre = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'documento', 'nombre', 'email', 'last_login']
        read_only_fields = fields
