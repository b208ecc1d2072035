"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from salesdesk.taxes.models import Iva, Retencion
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_active=True, is_staff=False, documento=None, **extra):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_active=is_active,
            is_staff=is_staff,
            documento=documento,
            **extra
        )

    @staticmethod
    def create_iva(name=None, rate=None, is_active=True):
        """Create a test IVA rate"""
        if not name:
            name = f'IVA_{TestDataFactory.random_string(6)}'
        if rate is None:
            rate = Decimal('19.00')
        return Iva.objects.create(name=name, rate=rate, is_active=is_active)

    @staticmethod
    def create_retencion(name=None, rate=None, is_active=True):
        """Create a test withholding rate"""
        if not name:
            name = f'Retencion_{TestDataFactory.random_string(6)}'
        if rate is None:
            rate = Decimal('2.50')
        return Retencion.objects.create(name=name, rate=rate, is_active=is_active)


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
