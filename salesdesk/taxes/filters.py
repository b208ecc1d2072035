import django_filters
from .models import Iva, Retencion


class RateFilter(django_filters.FilterSet):
    """Filters shared by the IVA and retención list endpoints"""
    search = django_filters.CharFilter(field_name='name', lookup_expr='icontains', label='Search')
    is_active = django_filters.BooleanFilter(field_name='is_active')


class IvaFilter(RateFilter):
    class Meta:
        model = Iva
        fields = ['search', 'is_active']


class RetencionFilter(RateFilter):
    class Meta:
        model = Retencion
        fields = ['search', 'is_active']
