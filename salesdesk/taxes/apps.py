from django.apps import AppConfig


class TaxesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'salesdesk.taxes'

    def ready(self):
        """Import signals when app is ready"""
        import salesdesk.taxes.rates  # noqa: F401  # Cache invalidation signals
