from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class CashierAdmin(BaseUserAdmin):
    list_display = ['username', 'documento', 'first_name', 'last_name', 'is_active', 'last_login']
    list_filter = ['is_active', 'is_staff']
    search_fields = ['username', 'documento', 'first_name', 'last_name']
    ordering = ['username']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Caja', {'fields': ('documento',)}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Caja', {'fields': ('documento',)}),
    )
