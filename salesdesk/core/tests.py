"""
Test suite for Core module
Tests: cashier login, token refresh, current cashier endpoint
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from salesdesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class AuthTests(TestCase):
    """Test authentication endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(
            username='cajero', password='testpass123', documento='1020304050',
            first_name='Ana', last_name='Gómez'
        )
        self.client = APIClient()

    def login(self, username='cajero', password='testpass123'):
        return self.client.post('/api/v1/auth/login/', {'username': username, 'password': password}, format='json')

    def test_login_returns_token_pair(self):
        """Test login with valid credentials"""
        response = self.login()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_returns_cashier_profile(self):
        """Test login body carries who is selling"""
        usuario = self.login().data['usuario']
        self.assertEqual(usuario['id'], self.user.id)
        self.assertEqual(usuario['documento'], '1020304050')
        self.assertEqual(usuario['nombre'], 'Ana Gómez')
        self.assertNotIn('groups', usuario)

    def test_login_wrong_password(self):
        """Test login with a wrong password is rejected"""
        with self.assertLogs('salesdesk.core.views', level='WARNING'):
            response = self.login(password='wrong')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_login_inactive_user(self):
        """Test inactive users cannot log in"""
        TestDataFactory.create_user(username='inactivo', password='testpass123', is_active=False)
        response = self.login(username='inactivo')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        """Test refreshing an access token"""
        login = self.login()
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_invalid_token(self):
        """Test refreshing with a garbage token"""
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_for_deleted_user(self):
        """Test a refresh token of a deleted cashier is rejected, not a server error"""
        refresh = self.login().data['refresh']
        self.user.delete()
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class CashierMeTests(TestCase):
    """Test current cashier endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='vendedor', documento='99887766')
        self.client = AuthenticatedAPIClient()

    def test_me_requires_authentication(self):
        """Test anonymous access is rejected"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_returns_current_cashier(self):
        """Test current cashier payload"""
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'vendedor')
        self.assertEqual(response.data['documento'], '99887766')
        self.assertEqual(response.data['nombre'], 'vendedor')
        self.assertEqual(set(response.data), {'id', 'username', 'documento', 'nombre', 'email', 'last_login'})
