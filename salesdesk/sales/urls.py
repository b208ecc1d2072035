from django.urls import path
from .views import calculate_line_total, calculate_sale_totals

urlpatterns = [
    path('sales/calculate-line-total/', calculate_line_total, name='sales-calculate-line-total'),
    path('sales/calculate-totals/', calculate_sale_totals, name='sales-calculate-totals'),
]
