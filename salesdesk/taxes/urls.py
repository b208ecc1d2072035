from django.urls import path
from .views import iva_list_create, iva_detail, retencion_list_create, retencion_detail

urlpatterns = [
    # Iva endpoints
    path('ivas/', iva_list_create, name='iva-list-create'),
    path('ivas/<int:pk>/', iva_detail, name='iva-detail'),

    # Retencion endpoints
    path('retenciones/', retencion_list_create, name='retencion-list-create'),
    path('retenciones/<int:pk>/', retencion_detail, name='retencion-detail'),
]
