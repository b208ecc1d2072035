from django.contrib import admin
from .models import Iva, Retencion


@admin.register(Iva)
class IvaAdmin(admin.ModelAdmin):
    list_display = ['name', 'rate', 'is_active', 'updated_at']
    list_filter = ['is_active']
    search_fields = ['name']
    ordering = ['rate']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Retencion)
class RetencionAdmin(admin.ModelAdmin):
    list_display = ['name', 'rate', 'is_active', 'updated_at']
    list_filter = ['is_active']
    search_fields = ['name']
    ordering = ['rate']
    readonly_fields = ['created_at', 'updated_at']
