"""
Comprehensive test suite for Sales module
Tests: line pricing, sale totals, calculation endpoints, remote/local client, sale drafts
"""
from decimal import Decimal
from unittest import mock

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status

from salesdesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from salesdesk.sales.client import (
    LineTotalCalculator, RemoteCalculationError, SalesAPIClient, SalesAPIError,
    SOURCE_LOCAL, SOURCE_REMOTE, build_default_calculator, parse_line_response,
)
from salesdesk.sales.drafts import RequestTokens, SaleDraft
from salesdesk.sales.pricing import (
    LineItem, compute_line_total, resolve_rate, round_money, summarize_lines, to_decimal, to_int_id,
)


class ToDecimalTests(SimpleTestCase):
    """Test lenient numeric coercion"""

    def test_plain_numbers(self):
        self.assertEqual(to_decimal('12.5'), Decimal('12.5'))
        self.assertEqual(to_decimal(7), Decimal('7'))
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))
        self.assertEqual(to_decimal(Decimal('3.25')), Decimal('3.25'))
        self.assertEqual(to_decimal('-4'), Decimal('-4'))

    def test_unreadable_input_is_zero(self):
        for value in ['', '   ', 'abc', None, True, False, [], {}, float('nan'), float('inf'), Decimal('NaN')]:
            with self.subTest(value=value):
                self.assertEqual(to_decimal(value), Decimal('0'))

    def test_numeric_prefix_is_kept(self):
        self.assertEqual(to_decimal('12abc'), Decimal('12'))
        self.assertEqual(to_decimal(' 3.5 kg'), Decimal('3.5'))
        self.assertEqual(to_decimal('.5'), Decimal('0.5'))
        self.assertEqual(to_decimal('1e3'), Decimal('1000'))
        self.assertEqual(to_decimal('1e308'), Decimal('1e308'))

    def test_outside_double_range_is_zero(self):
        for value in ['1e400', '-1e400', '1e-400', '1e2000000000', '1e-2000000000', 10 ** 400, Decimal('1e999999')]:
            with self.subTest(value=value):
                self.assertEqual(to_decimal(value), Decimal('0'))
        self.assertEqual(to_decimal('1,5'), Decimal('1'))


class RoundMoneyTests(SimpleTestCase):
    """Test cent rounding"""

    def test_halves_round_up(self):
        self.assertEqual(round_money(Decimal('2.675')), Decimal('2.68'))
        self.assertEqual(round_money(Decimal('1.005')), Decimal('1.01'))
        self.assertEqual(round_money(Decimal('2.674999')), Decimal('2.67'))

    def test_negative_halves_round_toward_positive(self):
        self.assertEqual(round_money(Decimal('-2.675')), Decimal('-2.67'))
        self.assertEqual(round_money(Decimal('-2.676')), Decimal('-2.68'))

    def test_always_two_places(self):
        self.assertEqual(str(round_money(Decimal('3145.5'))), '3145.50')
        self.assertEqual(str(round_money(0)), '0.00')


class ComputeLineTotalTests(SimpleTestCase):
    """Test the line pricing formula"""

    def test_full_example(self):
        """3 x 1000, 10% discount, IVA 19%, withholding 2.5%"""
        result = compute_line_total(3, 1000, 10, True, 19, Decimal('2.5'))
        self.assertEqual(result.raw_subtotal, Decimal('3000.00'))
        self.assertEqual(result.discount_amount, Decimal('300.00'))
        self.assertEqual(result.subtotal_after_discount, Decimal('2700.00'))
        self.assertEqual(result.tax_amount, Decimal('513.00'))
        self.assertEqual(result.withholding_amount, Decimal('67.50'))
        self.assertEqual(result.total, Decimal('3145.50'))

    def test_no_discount_no_taxes(self):
        for quantity, price in [(0, 0), (1, '9.99'), ('2.5', '4.02'), (7, '0.335')]:
            with self.subTest(quantity=quantity, price=price):
                result = compute_line_total(quantity, price, 0, False, 0, 0)
                self.assertEqual(result.total, round_money(to_decimal(quantity) * to_decimal(price)))

    def test_percentage_discount(self):
        result = compute_line_total(4, '12.5', 15, True)
        self.assertEqual(result.discount_amount, Decimal('7.50'))
        self.assertEqual(result.total, Decimal('42.50'))

    def test_flat_discount(self):
        result = compute_line_total(4, '12.5', '3.333', False)
        self.assertEqual(result.discount_amount, Decimal('3.33'))
        self.assertEqual(result.total, Decimal('46.67'))

    def test_taxes_use_post_discount_subtotal(self):
        """10 x 100 with a flat 50 discount and 10% IVA gives 95 of tax, not 100"""
        result = compute_line_total(10, 100, 50, False, 10, 0)
        self.assertEqual(result.subtotal_after_discount, Decimal('950.00'))
        self.assertEqual(result.tax_amount, Decimal('95.00'))
        self.assertEqual(result.total, Decimal('1045.00'))

    def test_withholding_subtracted(self):
        result = compute_line_total(1, 1000, 0, False, 0, 4)
        self.assertEqual(result.withholding_amount, Decimal('40.00'))
        self.assertEqual(result.total, Decimal('960.00'))

    def test_rounding_only_on_output(self):
        """Total rounds from full precision, not from the rounded parts"""
        result = compute_line_total(1, 10, '33.333', True, 19, 0)
        self.assertEqual(result.subtotal_after_discount, Decimal('6.67'))
        self.assertEqual(result.tax_amount, Decimal('1.27'))
        self.assertEqual(result.total, Decimal('7.93'))

    def test_garbage_input_is_zero(self):
        result = compute_line_total('', 'abc', 'x', False, None, None)
        self.assertEqual(result.total, Decimal('0.00'))
        self.assertEqual(result.discount_amount, Decimal('0.00'))

    def test_none_rates_mean_no_tax(self):
        result = compute_line_total(2, 50, 0, False, None, None)
        self.assertEqual(result.tax_amount, Decimal('0.00'))
        self.assertEqual(result.withholding_amount, Decimal('0.00'))
        self.assertEqual(result.total, Decimal('100.00'))

    def test_flat_discount_above_subtotal_not_clamped(self):
        result = compute_line_total(1, 100, 150, False, 10, 0)
        self.assertEqual(result.subtotal_after_discount, Decimal('-50.00'))
        self.assertEqual(result.tax_amount, Decimal('-5.00'))
        self.assertEqual(result.total, Decimal('-55.00'))

    def test_negative_inputs_accepted(self):
        result = compute_line_total(-2, 10)
        self.assertEqual(result.total, Decimal('-20.00'))

    def test_same_inputs_same_result(self):
        first = compute_line_total('3', '19.99', '5', True, '19', '2.5')
        second = compute_line_total('3', '19.99', '5', True, '19', '2.5')
        self.assertEqual(first, second)

    def test_line_item_compute(self):
        item = LineItem.from_raw('3', '1000', '10', True, '19', '2.5')
        self.assertEqual(item.gross, Decimal('3000'))
        self.assertEqual(item.compute().total, Decimal('3145.50'))


class SummarizeLinesTests(SimpleTestCase):
    """Test sale footer totals"""

    def test_totals_over_lines(self):
        first = LineItem.from_raw(3, 1000, 10, True, 19, '2.5')
        second = LineItem.from_raw(10, 100, 50, False, 10, 0)
        totals = summarize_lines([(first, first.compute()), (second, second.compute())])
        self.assertEqual(totals.gross, Decimal('4000.00'))
        self.assertEqual(totals.discount, Decimal('350.00'))
        self.assertEqual(totals.subtotal, Decimal('3650.00'))
        self.assertEqual(totals.tax, Decimal('608.00'))
        self.assertEqual(totals.withholding, Decimal('67.50'))
        self.assertEqual(totals.total, Decimal('4190.50'))

    def test_uncalculated_line(self):
        item = LineItem.from_raw(2, 5)
        totals = summarize_lines([(item, None)])
        self.assertEqual(totals.gross, Decimal('10.00'))
        self.assertEqual(totals.subtotal, Decimal('10.00'))
        self.assertEqual(totals.total, Decimal('0.00'))

    def test_empty_sale(self):
        totals = summarize_lines([])
        self.assertEqual(totals.total, Decimal('0.00'))


class ResolveRateTests(SimpleTestCase):
    """Test id -> percentage resolution"""

    rates = {1: Decimal('19.00'), 2: Decimal('5.00')}

    def test_known_ids(self):
        self.assertEqual(resolve_rate(self.rates, 1), Decimal('19.00'))
        self.assertEqual(resolve_rate(self.rates, '2'), Decimal('5.00'))
        self.assertEqual(resolve_rate(self.rates, ' 2 '), Decimal('5.00'))

    def test_missing_or_unknown_ids(self):
        for rate_id in [None, '', 0, '0', 99, 'abc', '9' * 100000, {'id': 1}]:
            with self.subTest(rate_id=str(rate_id)[:20]):
                self.assertEqual(resolve_rate(self.rates, rate_id), Decimal('0'))

    def test_exponent_ids_read_leading_integer(self):
        self.assertEqual(resolve_rate(self.rates, '1e5'), Decimal('19.00'))
        self.assertEqual(resolve_rate(self.rates, '2.9'), Decimal('5.00'))
        self.assertEqual(resolve_rate(self.rates, '1e2000000000'), Decimal('19.00'))


class ToIntIdTests(SimpleTestCase):
    """Test parseInt-style id reading"""

    def test_leading_integer(self):
        cases = [('7', 7), (' 7 ', 7), ('7.9', 7), ('1e5', 1), ('-3', -3), ('12abc', 12), (12, 12), (1e21, 1)]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(to_int_id(value), expected)

    def test_no_integer(self):
        for value in [None, '', 'abc', '.5', True, False, [1], {'id': 1}, float('nan')]:
            with self.subTest(value=value):
                self.assertIsNone(to_int_id(value))

    def test_too_long_for_a_key(self):
        self.assertIsNone(to_int_id('9' * 100000))
        self.assertIsNone(to_int_id(10 ** 30))
        self.assertEqual(to_int_id('0000000000000000000000042'), 42)


class LargeAndOddInputTests(SimpleTestCase):
    """Test pricing never raises at the edges of numeric input"""

    def test_huge_quantity(self):
        result = compute_line_total('1e30', '1')
        self.assertEqual(result.total, Decimal('1e30'))
        self.assertTrue(str(result.total).endswith('.00'))

    def test_huge_product_with_tax(self):
        result = compute_line_total('1000000000000000', '1000000000000', 0, False, 19, 0)
        self.assertEqual(result.raw_subtotal, Decimal('1e27'))
        self.assertEqual(result.tax_amount, Decimal('1.9e26'))
        self.assertEqual(result.total, Decimal('1.19e27'))

    def test_product_beyond_double_range(self):
        result = compute_line_total('1e300', '1e300', 10, True, '1e300', 0)
        self.assertEqual(result.raw_subtotal, Decimal('1e600'))
        self.assertEqual(result.subtotal_after_discount, Decimal('9e599'))
        self.assertEqual(result.tax_amount, Decimal('9e897'))

    def test_many_digit_inputs(self):
        result = compute_line_total(3, '0.' + '3' * 3000)
        self.assertEqual(result.total, Decimal('1.00'))

    def test_cents_exact_on_large_values(self):
        self.assertEqual(round_money(Decimal('123456789012345678901234567890.125')),
                         Decimal('123456789012345678901234567890.13'))
        self.assertEqual(round_money(Decimal('-123456789012345678901234567890.125')),
                         Decimal('-123456789012345678901234567890.12'))

    def test_float_inputs(self):
        self.assertEqual(compute_line_total(1, 0.1 + 0.2).total, Decimal('0.30'))
        self.assertEqual(compute_line_total(3, 0.1).total, Decimal('0.30'))
        self.assertEqual(compute_line_total(1, 1.005).total, Decimal('1.01'))

    def test_no_negative_zero(self):
        self.assertEqual(str(round_money('-0.001')), '0.00')

    def test_footer_with_huge_lines(self):
        item = LineItem.from_raw('1e300', '1e300')
        totals = summarize_lines([(item, item.compute()), (item, None)])
        self.assertEqual(totals.gross, Decimal('2e600'))
        self.assertEqual(totals.total, Decimal('1e600'))

    def test_local_calculator_never_raises(self):
        calculation = LineTotalCalculator().calculate('1e30', '1e300', '1e400', False, '1e2000000000', {'x': 1})
        self.assertEqual(calculation.source, SOURCE_LOCAL)
        self.assertEqual(calculation.result.total, Decimal('1e330'))


class CalculateLineTotalAPITests(TestCase):
    """Test POST sales/calculate-line-total/"""

    url = '/api/v1/sales/calculate-line-total/'

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.iva = TestDataFactory.create_iva(rate=Decimal('19.00'))
        self.retencion = TestDataFactory.create_retencion(rate=Decimal('2.50'))

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.post(self.url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_full_breakdown(self):
        data = {
            'cantidad': 3,
            'valorUnitario': 1000,
            'descuento': 10,
            'descuentoEnPorcentaje': True,
            'idIva': self.iva.id,
            'idRetencion': self.retencion.id,
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['valorTotal'], Decimal('3145.50'))

        desglose = response.data['desglose']
        self.assertEqual(desglose['subtotalInicial'], Decimal('3000.00'))
        self.assertEqual(desglose['montoDescuento'], Decimal('300.00'))
        self.assertEqual(desglose['subtotalDespuesDescuento'], Decimal('2700.00'))
        self.assertEqual(desglose['porcentajeIva'], Decimal('19.00'))
        self.assertEqual(desglose['ivaMonto'], Decimal('513.00'))
        self.assertEqual(desglose['porcentajeRetencion'], Decimal('2.50'))
        self.assertEqual(desglose['retencionMonto'], Decimal('67.50'))
        self.assertEqual(desglose['idIva'], self.iva.id)
        self.assertTrue(desglose['descuentoEnPorcentaje'])

    def test_amounts_render_as_json_numbers(self):
        data = {'cantidad': 2, 'valorUnitario': '10.5', 'descuento': 0, 'descuentoEnPorcentaje': False}
        response = self.client.post(self.url, data, format='json')
        body = response.json()
        self.assertEqual(body['valorTotal'], 21.0)
        self.assertIsNone(body['desglose']['idIva'])

    def test_missing_required_fields(self):
        response = self.client.post(self.url, {'cantidad': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        for field in ['valorUnitario', 'descuento', 'descuentoEnPorcentaje']:
            self.assertIn(field, response.data)

    def test_garbage_values_count_as_zero(self):
        data = {'cantidad': '', 'valorUnitario': 'abc', 'descuento': None, 'descuentoEnPorcentaje': False}
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['valorTotal'], Decimal('0.00'))

    def test_unknown_iva_means_no_tax(self):
        data = {'cantidad': 1, 'valorUnitario': 100, 'descuento': 0, 'descuentoEnPorcentaje': False, 'idIva': 99999}
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['desglose']['porcentajeIva'], Decimal('0'))
        self.assertEqual(response.data['valorTotal'], Decimal('100.00'))

    def test_rate_change_is_picked_up(self):
        data = {'cantidad': 1, 'valorUnitario': 100, 'descuento': 0, 'descuentoEnPorcentaje': False, 'idIva': self.iva.id}
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.data['valorTotal'], Decimal('119.00'))

        self.iva.rate = Decimal('5.00')
        self.iva.save()
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.data['valorTotal'], Decimal('105.00'))

    def line(self, **fields):
        data = {'cantidad': 1, 'valorUnitario': 1, 'descuento': 0, 'descuentoEnPorcentaje': False}
        data.update(fields)
        return self.client.post(self.url, data, format='json')

    def test_huge_quantity(self):
        response = self.line(cantidad=1e30)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['valorTotal'], Decimal('1e30'))

    def test_huge_product_with_tax(self):
        response = self.line(cantidad=1000000000000000, valorUnitario=1000000000000, idIva=self.iva.id)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['valorTotal'], Decimal('1.19e27'))
        self.assertEqual(response.data['desglose']['ivaMonto'], Decimal('1.9e26'))

    def test_amounts_beyond_double_render_as_null(self):
        response = self.line(cantidad='1e200', valorUnitario='1e200')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()
        self.assertIsNone(body['valorTotal'])
        self.assertIsNone(body['desglose']['subtotalInicial'])
        self.assertEqual(body['desglose']['ivaMonto'], 0.0)

    def test_input_beyond_double_counts_as_zero(self):
        response = self.line(cantidad='1e400', valorUnitario=5)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['valorTotal'], Decimal('0.00'))

    def test_float_inputs(self):
        response = self.line(valorUnitario=0.1 + 0.2)
        self.assertEqual(response.data['valorTotal'], Decimal('0.30'))
        response = self.line(cantidad=3, valorUnitario=0.1)
        self.assertEqual(response.data['valorTotal'], Decimal('0.30'))

    def test_iva_id_read_like_parseint(self):
        response = self.line(valorUnitario=100, idIva=f'{self.iva.id}e5')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['desglose']['idIva'], self.iva.id)
        self.assertEqual(response.data['desglose']['porcentajeIva'], Decimal('19.00'))
        self.assertEqual(response.data['valorTotal'], Decimal('119.00'))

    def test_huge_exponent_id(self):
        response = self.line(idIva='1e2000000000', idRetencion='9' * 5000)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['desglose']['idIva'], 1)
        self.assertIsNone(response.data['desglose']['idRetencion'])

    def test_non_scalar_ids_echo_null(self):
        response = self.line(valorUnitario=100, idIva={'id': self.iva.id}, idRetencion=[self.retencion.id])
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['desglose']['idIva'])
        self.assertIsNone(response.data['desglose']['idRetencion'])
        self.assertEqual(response.data['valorTotal'], Decimal('100.00'))


class CalculateSaleTotalsAPITests(TestCase):
    """Test POST sales/calculate-totals/"""

    url = '/api/v1/sales/calculate-totals/'

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.iva = TestDataFactory.create_iva(rate=Decimal('10.00'))

    def test_totals(self):
        data = {
            'descuentoEnPorcentaje': False,
            'lineas': [
                {'cantidad': 10, 'valorUnitario': 100, 'descuento': 50, 'idIva': self.iva.id},
                {'cantidad': 2, 'valorUnitario': '25.5', 'descuento': 0},
            ],
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['lineas']), 2)
        self.assertEqual(response.data['lineas'][0]['valorTotal'], Decimal('1045.00'))
        self.assertEqual(response.data['lineas'][1]['valorTotal'], Decimal('51.00'))

        totales = response.data['totales']
        self.assertEqual(totales['bruto'], Decimal('1051.00'))
        self.assertEqual(totales['descuento'], Decimal('50.00'))
        self.assertEqual(totales['subtotal'], Decimal('1001.00'))
        self.assertEqual(totales['iva'], Decimal('95.00'))
        self.assertEqual(totales['retencion'], Decimal('0.00'))
        self.assertEqual(totales['total'], Decimal('1096.00'))

    def test_empty_sale(self):
        response = self.client.post(self.url, {'descuentoEnPorcentaje': True, 'lineas': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totales']['total'], Decimal('0.00'))

    def test_huge_lines(self):
        data = {
            'descuentoEnPorcentaje': False,
            'lineas': [
                {'cantidad': '1e200', 'valorUnitario': '1e200', 'descuento': 0},
                {'cantidad': 1e30, 'valorUnitario': 1, 'descuento': 0},
            ],
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()
        self.assertIsNone(body['totales']['total'])
        self.assertEqual(body['lineas'][1]['valorTotal'], 1e30)

    def test_line_missing_fields(self):
        data = {'descuentoEnPorcentaje': False, 'lineas': [{'cantidad': 1}]}
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('lineas', response.data)


def _response(status_code=200, body=None, json_error=None):
    response = mock.Mock(status_code=status_code)
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    return response


REMOTE_BODY = {
    'valorTotal': Decimal('3145.5'),
    'desglose': {
        'subtotalInicial': Decimal('3000'),
        'montoDescuento': Decimal('300'),
        'subtotalDespuesDescuento': Decimal('2700'),
        'porcentajeIva': Decimal('19'),
        'ivaMonto': Decimal('513'),
        'porcentajeRetencion': Decimal('2.5'),
        'retencionMonto': Decimal('67.5'),
    },
}


class SalesAPIClientTests(SimpleTestCase):
    """Test the HTTP wrapper"""

    def setUp(self):
        self.client = SalesAPIClient('http://salesdesk.test/api/v1/', timeout=3)

    def test_authenticate_sets_bearer_header(self):
        with mock.patch.object(self.client.session, 'request', return_value=_response(body={'access': 'abc', 'refresh': 'def'})) as request:
            self.client.authenticate('cajero', 'secret')
        request.assert_called_once_with(
            'POST', 'http://salesdesk.test/api/v1/auth/login/', timeout=3,
            json={'username': 'cajero', 'password': 'secret'}
        )
        self.assertEqual(self.client.session.headers['Authorization'], 'Bearer abc')

    def test_authenticate_without_token(self):
        with mock.patch.object(self.client.session, 'request', return_value=_response(body={})):
            with self.assertRaises(SalesAPIError):
                self.client.authenticate('cajero', 'secret')

    def test_calculate_line_total_network_error(self):
        with mock.patch.object(self.client.session, 'request', side_effect=requests.exceptions.ConnectionError('refused')):
            with self.assertRaises(RemoteCalculationError):
                self.client.calculate_line_total({})

    def test_calculate_line_total_http_error(self):
        with mock.patch.object(self.client.session, 'request', return_value=_response(status_code=500)):
            with self.assertRaises(RemoteCalculationError):
                self.client.calculate_line_total({})

    def test_calculate_line_total_invalid_json(self):
        with mock.patch.object(self.client.session, 'request', return_value=_response(json_error=ValueError('Expecting value'))):
            with self.assertRaises(RemoteCalculationError):
                self.client.calculate_line_total({})

    def test_fetch_errors_are_api_errors(self):
        with mock.patch.object(self.client.session, 'request', side_effect=requests.exceptions.Timeout('slow')):
            with self.assertRaises(SalesAPIError):
                self.client.fetch_ivas()


class ParseLineResponseTests(SimpleTestCase):
    """Test reading calculate-line-total bodies"""

    def test_full_body(self):
        result, tax_rate, withholding_rate = parse_line_response(REMOTE_BODY)
        self.assertEqual(result.total, Decimal('3145.50'))
        self.assertEqual(result.tax_amount, Decimal('513.00'))
        self.assertEqual(result.subtotal_after_discount, Decimal('2700.00'))
        self.assertEqual(tax_rate, Decimal('19'))
        self.assertEqual(withholding_rate, Decimal('2.5'))

    def test_missing_breakdown_counts_as_zero(self):
        result, tax_rate, _ = parse_line_response({'valorTotal': 100})
        self.assertEqual(result.total, Decimal('100.00'))
        self.assertEqual(result.tax_amount, Decimal('0.00'))
        self.assertEqual(tax_rate, Decimal('0'))

    def test_malformed_bodies(self):
        for body in [None, [], 'ok', {'desglose': {}}, {'valorTotal': 1, 'desglose': [1, 2]}]:
            with self.subTest(body=body):
                with self.assertRaises(RemoteCalculationError):
                    parse_line_response(body)


class LineTotalCalculatorTests(SimpleTestCase):
    """Test remote-first pricing with local fallback"""

    iva_rates = {1: Decimal('19')}
    retencion_rates = {2: Decimal('2.5')}

    def make_calculator(self, **request_kwargs):
        client = SalesAPIClient('http://salesdesk.test/api/v1')
        patcher = mock.patch.object(client.session, 'request', **request_kwargs)
        self.request = patcher.start()
        self.addCleanup(patcher.stop)
        return LineTotalCalculator(client, self.iva_rates, self.retencion_rates)

    def test_without_client_computes_locally(self):
        calculator = LineTotalCalculator(iva_rates=self.iva_rates, retencion_rates=self.retencion_rates)
        calculation = calculator.calculate('3', '1000', '10', True, 1, 2)
        self.assertEqual(calculation.source, SOURCE_LOCAL)
        self.assertEqual(calculation.result.total, Decimal('3145.50'))
        self.assertEqual(calculation.tax_rate_percent, Decimal('19'))

    def test_prefers_remote(self):
        calculator = self.make_calculator(return_value=_response(body=REMOTE_BODY))
        calculation = calculator.calculate('3', '1000', '10', True, '1', '2')
        self.assertTrue(calculation.is_remote)
        self.assertEqual(calculation.source, SOURCE_REMOTE)
        self.assertEqual(calculation.result.total, Decimal('3145.50'))

        _, kwargs = self.request.call_args
        self.assertEqual(kwargs['json'], {
            'cantidad': 3.0,
            'valorUnitario': 1000.0,
            'descuento': 10.0,
            'descuentoEnPorcentaje': True,
            'idIva': 1,
            'idRetencion': 2,
        })

    def test_empty_ids_sent_as_null(self):
        calculator = self.make_calculator(return_value=_response(body={'valorTotal': 0}))
        calculator.calculate('', '', '', False, '', None)
        _, kwargs = self.request.call_args
        self.assertIsNone(kwargs['json']['idIva'])
        self.assertIsNone(kwargs['json']['idRetencion'])
        self.assertEqual(kwargs['json']['cantidad'], 0.0)

    def test_falls_back_on_network_error(self):
        calculator = self.make_calculator(side_effect=requests.exceptions.ConnectionError('refused'))
        with self.assertLogs('salesdesk.sales.client', level='WARNING') as logs:
            calculation = calculator.calculate('3', '1000', '10', True, 1, 2)
        self.assertEqual(calculation.source, SOURCE_LOCAL)
        self.assertEqual(calculation.result.total, Decimal('3145.50'))
        self.assertIn('computing locally', logs.output[0])

    def test_falls_back_on_http_error(self):
        calculator = self.make_calculator(return_value=_response(status_code=502))
        with self.assertLogs('salesdesk.sales.client', level='WARNING'):
            calculation = calculator.calculate(2, 50, 0, False, 1, None)
        self.assertEqual(calculation.source, SOURCE_LOCAL)
        self.assertEqual(calculation.result.total, Decimal('119.00'))

    def test_falls_back_on_malformed_json(self):
        calculator = self.make_calculator(return_value=_response(json_error=ValueError('bad')))
        with self.assertLogs('salesdesk.sales.client', level='WARNING'):
            calculation = calculator.calculate(1, 10)
        self.assertEqual(calculation.source, SOURCE_LOCAL)
        self.assertEqual(calculation.result.total, Decimal('10.00'))

    def test_falls_back_on_unexpected_body(self):
        calculator = self.make_calculator(return_value=_response(body=['not', 'a', 'line']))
        with self.assertLogs('salesdesk.sales.client', level='WARNING'):
            calculation = calculator.calculate(1, 10)
        self.assertEqual(calculation.source, SOURCE_LOCAL)

    def test_load_reference_rates(self):
        client = mock.Mock()
        client.fetch_ivas.return_value = [{'id': 3, 'name': 'General', 'rate': '19.00'}]
        client.fetch_retenciones.return_value = [{'id': 4, 'name': 'Compras', 'rate': '2.50'}, {'name': 'sin id'}]
        calculator = LineTotalCalculator(client)
        self.assertTrue(calculator.load_reference_rates())
        self.assertEqual(calculator.iva_rates, {3: Decimal('19.00')})
        self.assertEqual(calculator.retencion_rates, {4: Decimal('2.50')})

    def test_reference_rate_ids_read_like_parseint(self):
        client = mock.Mock()
        client.fetch_ivas.return_value = [
            {'id': '3', 'rate': '19.00'},
            {'id': '1e2000000000', 'rate': '5.00'},
            {'id': 'x', 'rate': '8.00'},
            {'id': '9' * 5000, 'rate': '1.00'},
        ]
        client.fetch_retenciones.return_value = []
        calculator = LineTotalCalculator(client)
        self.assertTrue(calculator.load_reference_rates())
        self.assertEqual(calculator.iva_rates, {3: Decimal('19.00'), 1: Decimal('5.00')})

    def test_exponent_ids_sent_as_leading_integer(self):
        calculator = self.make_calculator(return_value=_response(body={'valorTotal': 0}))
        calculator.calculate(1, 1, 0, False, '1e5', '1e2000000000')
        _, kwargs = self.request.call_args
        self.assertEqual(kwargs['json']['idIva'], 1)
        self.assertEqual(kwargs['json']['idRetencion'], 1)

    def test_load_reference_rates_failure_keeps_previous(self):
        client = mock.Mock()
        client.fetch_ivas.side_effect = SalesAPIError('down')
        calculator = LineTotalCalculator(client, self.iva_rates, self.retencion_rates)
        with self.assertLogs('salesdesk.sales.client', level='WARNING'):
            self.assertFalse(calculator.load_reference_rates())
        self.assertEqual(calculator.iva_rates, self.iva_rates)

    def test_load_reference_rates_without_client(self):
        self.assertFalse(LineTotalCalculator().load_reference_rates())

    @override_settings(SALESDESK_API_URL='')
    def test_default_calculator_without_url_is_local(self):
        with mock.patch.dict('os.environ', {'SALESDESK_API_URL': ''}):
            calculator = build_default_calculator()
        self.assertIsNone(calculator.client)

    @override_settings(SALESDESK_API_URL='http://salesdesk.test/api/v1', SALESDESK_API_TIMEOUT=2)
    def test_default_calculator_with_url(self):
        with mock.patch('salesdesk.sales.client.SalesAPIClient.fetch_ivas', return_value=[{'id': 1, 'rate': '19'}]), \
                mock.patch('salesdesk.sales.client.SalesAPIClient.fetch_retenciones', return_value=[]):
            calculator = build_default_calculator()
        self.assertEqual(calculator.client.base_url, 'http://salesdesk.test/api/v1')
        self.assertEqual(calculator.client.timeout, 2.0)
        self.assertEqual(calculator.iva_rates, {1: Decimal('19')})


class InProcessSalesClient:
    """Routes calculate-line-total through the Django test client"""

    def __init__(self, api_client):
        self.api_client = api_client

    def calculate_line_total(self, payload):
        response = self.api_client.post('/api/v1/sales/calculate-line-total/', payload, format='json')
        if response.status_code != 200:
            raise RemoteCalculationError(f"HTTP {response.status_code}")
        return response.json(parse_float=Decimal)


class RemoteLocalAgreementTests(TestCase):
    """Test the endpoint and the local fallback price lines identically"""

    def setUp(self):
        cache.clear()
        api_client = AuthenticatedAPIClient()
        api_client.authenticate_user(TestDataFactory.create_user())
        self.iva = TestDataFactory.create_iva(rate=Decimal('19.00'))
        self.retencion = TestDataFactory.create_retencion(rate=Decimal('2.50'))
        rates = ({self.iva.id: Decimal('19.00')}, {self.retencion.id: Decimal('2.50')})
        self.remote = LineTotalCalculator(InProcessSalesClient(api_client), *rates)
        self.local = LineTotalCalculator(None, *rates)

    def test_same_results(self):
        cases = [
            ('3', '1000', '10', True, self.iva.id, self.retencion.id),
            ('1', '10', '33.333', True, self.iva.id, None),
            ('7', '0.335', '0', False, None, self.retencion.id),
            ('10', '100', '50', False, self.iva.id, None),
            ('', 'abc', '', False, None, None),
        ]
        for case in cases:
            with self.subTest(case=case):
                remote = self.remote.calculate(*case)
                local = self.local.calculate(*case)
                self.assertEqual(remote.source, SOURCE_REMOTE)
                self.assertEqual(remote.result, local.result)


class RequestTokensTests(SimpleTestCase):
    """Test per-line request tokens"""

    def test_latest_token_is_current(self):
        tokens = RequestTokens()
        first = tokens.issue(1)
        second = tokens.issue(1)
        self.assertGreater(second, first)
        self.assertFalse(tokens.is_current(1, first))
        self.assertTrue(tokens.is_current(1, second))

    def test_keys_are_independent(self):
        tokens = RequestTokens()
        line_one = tokens.issue(1)
        tokens.issue(2)
        self.assertTrue(tokens.is_current(1, line_one))

    def test_forget(self):
        tokens = RequestTokens()
        token = tokens.issue(1)
        tokens.forget(1)
        self.assertFalse(tokens.is_current(1, token))


class SaleDraftTests(SimpleTestCase):
    """Test the sale entry view model"""

    def setUp(self):
        self.calculator = LineTotalCalculator(
            iva_rates={1: Decimal('19')},
            retencion_rates={2: Decimal('2.5')},
        )
        self.draft = SaleDraft(self.calculator)

    def test_starts_with_one_empty_line(self):
        self.assertEqual(len(self.draft.lines), 1)
        self.assertEqual(self.draft.lines[0].id, 1)
        self.assertIsNone(self.draft.lines[0].calculation)

    def test_add_and_remove_lines(self):
        line = self.draft.add_line()
        self.assertEqual(line.id, 2)
        self.assertTrue(self.draft.remove_line(1))
        self.assertEqual([l.id for l in self.draft.lines], [2])
        self.assertEqual(self.draft.add_line().id, 3)

    def test_last_line_is_kept(self):
        self.assertFalse(self.draft.remove_line(1))
        self.assertEqual(len(self.draft.lines), 1)

    def test_update_prices_line(self):
        applied = self.draft.update_line(1, quantity='3', unit_price='1000', discount='10', iva_id=1, retencion_id=2)
        self.assertTrue(applied)
        line = self.draft.get_line(1)
        self.assertEqual(line.calculation.source, SOURCE_LOCAL)
        # flat discount of 10: 2990 + 19% - 2.5%
        self.assertEqual(line.total, Decimal('3483.35'))

    def test_discount_mode_reprices_filled_lines(self):
        self.draft.update_line(1, quantity='3', unit_price='1000', discount='10', iva_id=1, retencion_id=2)
        partial = self.draft.add_line()
        self.draft.update_line(partial.id, quantity='2')
        partial_calculation = partial.calculation

        with mock.patch.object(self.calculator, 'calculate', wraps=self.calculator.calculate) as calculate:
            self.draft.set_discount_mode(True)
        self.assertEqual(calculate.call_count, 1)
        self.assertEqual(self.draft.get_line(1).total, Decimal('3145.50'))
        self.assertIs(partial.calculation, partial_calculation)

    def test_same_discount_mode_is_noop(self):
        self.draft.update_line(1, quantity='1', unit_price='10')
        with mock.patch.object(self.calculator, 'calculate') as calculate:
            self.draft.set_discount_mode(False)
        calculate.assert_not_called()

    def test_unknown_field(self):
        with self.assertRaises(ValueError):
            self.draft.update_line(1, colour='red')

    def test_unknown_line(self):
        with self.assertRaises(KeyError):
            self.draft.update_line(42, quantity='1')

    def test_stale_result_is_discarded(self):
        """A newer edit that finishes first wins over the older in-flight one"""
        original = self.calculator.calculate
        calls = []

        def slow_calculate(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                self.draft.update_line(1, quantity='5')
            return original(*args, **kwargs)

        with mock.patch.object(self.calculator, 'calculate', side_effect=slow_calculate):
            with self.assertLogs('salesdesk.sales.drafts', level='DEBUG'):
                applied = self.draft.update_line(1, quantity='2', unit_price='10')

        self.assertFalse(applied)
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.draft.get_line(1).total, Decimal('50.00'))

    def test_result_for_removed_line_is_discarded(self):
        self.draft.add_line()

        def calculate_then_remove(*args, **kwargs):
            self.draft.remove_line(2)
            return LineTotalCalculator().calculate(*args, **kwargs)

        with mock.patch.object(self.calculator, 'calculate', side_effect=calculate_then_remove):
            self.assertFalse(self.draft.update_line(2, quantity='1', unit_price='1'))

    def test_totals(self):
        self.draft.update_line(1, quantity='3', unit_price='1000', discount='10', iva_id=1, retencion_id=2)
        line = self.draft.add_line()
        self.draft.update_line(line.id, quantity='10', unit_price='100', discount='50')
        totals = self.draft.totals()
        self.assertEqual(totals.gross, Decimal('4000.00'))
        self.assertEqual(totals.discount, Decimal('60.00'))
        self.assertEqual(totals.subtotal, Decimal('3940.00'))
        self.assertEqual(totals.total, Decimal('4433.35'))

    def test_reset(self):
        self.draft.add_line()
        self.draft.update_line(1, quantity='1', unit_price='1')
        self.draft.reset()
        self.assertEqual(len(self.draft.lines), 1)
        self.assertIsNone(self.draft.lines[0].calculation)
