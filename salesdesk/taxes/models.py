from django.db import models


class Iva(models.Model):
    """Value-added tax rates (IVA) offered on sales lines"""
    name = models.CharField(max_length=100)
    rate = models.DecimalField(max_digits=5, decimal_places=2)  # e.g., 19.00 for 19%
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.rate}%)"

    class Meta:
        db_table = 'ivas'
        ordering = ['rate', 'id']


class Retencion(models.Model):
    """Withholding (retención en la fuente) rates"""
    name = models.CharField(max_length=100)
    rate = models.DecimalField(max_digits=5, decimal_places=2)  # e.g., 2.50 for 2.5%
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.rate}%)"

    class Meta:
        db_table = 'retenciones'
        ordering = ['rate', 'id']
