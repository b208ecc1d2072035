"""
Test suite for Taxes module
Tests: IVA and retención CRUD endpoints, filters, cached rate lookups
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from salesdesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from salesdesk.taxes.models import Iva, Retencion
from salesdesk.taxes.rates import get_iva_rates, get_retencion_rates, IVA_RATES_CACHE_KEY


class IvaAPITests(TestCase):
    """Test IVA endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_list_requires_authentication(self):
        """Test anonymous access is rejected"""
        self.client.logout()
        response = self.client.get('/api/v1/ivas/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_ordered_by_rate(self):
        """Test IVAs are listed from lowest to highest rate"""
        TestDataFactory.create_iva(name='General', rate=Decimal('19.00'))
        TestDataFactory.create_iva(name='Exento', rate=Decimal('0.00'))
        TestDataFactory.create_iva(name='Reducido', rate=Decimal('5.00'))

        response = self.client.get('/api/v1/ivas/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data], ['Exento', 'Reducido', 'General'])

    def test_list_filter_active(self):
        """Test is_active filter"""
        TestDataFactory.create_iva(name='Vigente', rate=Decimal('19.00'))
        TestDataFactory.create_iva(name='Derogado', rate=Decimal('16.00'), is_active=False)

        response = self.client.get('/api/v1/ivas/?is_active=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data], ['Vigente'])

    def test_list_search(self):
        """Test name search"""
        TestDataFactory.create_iva(name='IVA General', rate=Decimal('19.00'))
        TestDataFactory.create_iva(name='IVA Reducido', rate=Decimal('5.00'))

        response = self.client.get('/api/v1/ivas/?search=reduc')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['name'], 'IVA Reducido')

    def test_create_iva(self):
        """Test creating an IVA rate"""
        response = self.client.post('/api/v1/ivas/', {'name': 'General', 'rate': '19.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Iva.objects.filter(name='General', rate=Decimal('19.00')).exists())

    def test_create_iva_rate_out_of_range(self):
        """Test rates above 100% are rejected"""
        response = self.client.post('/api/v1/ivas/', {'name': 'Roto', 'rate': '150.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('rate', response.data)

    def test_update_iva(self):
        """Test partial update of an IVA rate"""
        iva = TestDataFactory.create_iva(rate=Decimal('19.00'))
        response = self.client.patch(f'/api/v1/ivas/{iva.id}/', {'rate': '16.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        iva.refresh_from_db()
        self.assertEqual(iva.rate, Decimal('16.00'))

    def test_delete_iva(self):
        """Test deleting an IVA rate"""
        iva = TestDataFactory.create_iva()
        response = self.client.delete(f'/api/v1/ivas/{iva.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Iva.objects.filter(id=iva.id).exists())

    def test_get_missing_iva(self):
        """Test 404 for unknown ids"""
        response = self.client.get('/api/v1/ivas/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class RetencionAPITests(TestCase):
    """Test retención endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_list(self):
        """Test creating a withholding rate and listing it"""
        response = self.client.post('/api/v1/retenciones/', {'name': 'Compras', 'rate': '2.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/v1/retenciones/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(Decimal(response.data[0]['rate']), Decimal('2.50'))

    def test_negative_rate_rejected(self):
        """Test negative rates are rejected"""
        response = self.client.post('/api/v1/retenciones/', {'name': 'Mal', 'rate': '-1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_retencion(self):
        """Test full update of a withholding rate"""
        retencion = TestDataFactory.create_retencion()
        response = self.client.put(
            f'/api/v1/retenciones/{retencion.id}/',
            {'name': 'Servicios', 'rate': '4.00', 'is_active': False},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        retencion.refresh_from_db()
        self.assertEqual(retencion.name, 'Servicios')
        self.assertFalse(retencion.is_active)

    def test_delete_retencion(self):
        """Test deleting a withholding rate"""
        retencion = TestDataFactory.create_retencion()
        response = self.client.delete(f'/api/v1/retenciones/{retencion.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Retencion.objects.filter(id=retencion.id).exists())


class RateLookupTests(TestCase):
    """Test cached id -> rate maps"""

    def setUp(self):
        cache.clear()

    def test_lookup_maps_ids_to_rates(self):
        """Test lookup contents"""
        iva = TestDataFactory.create_iva(rate=Decimal('19.00'))
        retencion = TestDataFactory.create_retencion(rate=Decimal('2.50'))
        self.assertEqual(get_iva_rates(), {iva.id: Decimal('19.00')})
        self.assertEqual(get_retencion_rates(), {retencion.id: Decimal('2.50')})

    def test_lookup_is_cached(self):
        """Test the second lookup does not hit the database"""
        TestDataFactory.create_iva()
        get_iva_rates()
        self.assertIsNotNone(cache.get(IVA_RATES_CACHE_KEY))
        with self.assertNumQueries(0):
            get_iva_rates()

    def test_save_invalidates_cache(self):
        """Test changing a rate drops the cached map"""
        iva = TestDataFactory.create_iva(rate=Decimal('19.00'))
        self.assertEqual(get_iva_rates()[iva.id], Decimal('19.00'))

        iva.rate = Decimal('16.00')
        iva.save()
        self.assertIsNone(cache.get(IVA_RATES_CACHE_KEY))
        self.assertEqual(get_iva_rates()[iva.id], Decimal('16.00'))

    def test_delete_invalidates_cache(self):
        """Test deleting a rate drops the cached map"""
        retencion = TestDataFactory.create_retencion()
        self.assertIn(retencion.id, get_retencion_rates())

        retencion_id = retencion.id
        retencion.delete()
        self.assertNotIn(retencion_id, get_retencion_rates())
