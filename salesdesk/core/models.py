from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Cashier account. ``documento`` is the identity document shown on the sales screen."""
    documento = models.CharField(max_length=20, unique=True, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'usuarios'

    @property
    def display_name(self):
        return self.get_full_name() or self.username
