"""
URL configuration for the SalesDesk backend.

All API routes live under /api/v1/; each app contributes its own urlpatterns.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "SalesDesk Admin Panel"
admin.site.site_title = "SalesDesk Admin Portal"
admin.site.index_title = "Welcome to SalesDesk"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('salesdesk.core.urls')),
    path('api/v1/', include('salesdesk.taxes.urls')),
    path('api/v1/', include('salesdesk.sales.urls')),
]
