"""
Client side of the line-total calculation.

The sales screen asks the backend to price each line so that rates and
rounding come from a single place, but it must never block on it: when the
backend is unreachable, answers with an error, or returns something that is
not the expected JSON, the line is priced locally with the same formula and
the reference rates fetched earlier.
"""
import os
import logging
from dataclasses import dataclass
from decimal import Decimal

import requests
from django.conf import settings

from .pricing import (
    LineItemResult, ZERO, compute_line_total, resolve_rate, round_money, to_decimal, to_int_id,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5

SOURCE_REMOTE = 'remote'
SOURCE_LOCAL = 'local'


class SalesAPIError(Exception):
    """A call to the SalesDesk API failed or returned an unusable body"""


class RemoteCalculationError(SalesAPIError):
    """The server-side line calculation could not be used"""


def get_api_url():
    """Base URL of the SalesDesk API (settings first, then environment)"""
    return getattr(settings, 'SALESDESK_API_URL', None) or os.getenv('SALESDESK_API_URL', '')


def get_api_timeout():
    return float(getattr(settings, 'SALESDESK_API_TIMEOUT', None) or os.getenv('SALESDESK_API_TIMEOUT', DEFAULT_TIMEOUT))


class SalesAPIClient:
    """Thin wrapper over a requests session pointed at /api/v1"""

    def __init__(self, base_url, timeout=DEFAULT_TIMEOUT, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def _request(self, method, endpoint, error_class=SalesAPIError, **kwargs):
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise error_class(f"{method} {url} failed: {str(e)}") from e

        if response.status_code != 200:
            raise error_class(f"{method} {url} returned HTTP {response.status_code}")

        try:
            return response.json(parse_float=Decimal)
        except ValueError as e:
            raise error_class(f"{method} {url} returned invalid JSON: {str(e)}") from e

    def authenticate(self, username, password):
        """Log in and attach the access token to every later request"""
        data = self._request('POST', '/auth/login/', json={'username': username, 'password': password})
        access_token = data.get('access') if isinstance(data, dict) else None
        if not access_token:
            raise SalesAPIError("Login response did not include an access token")
        self.session.headers['Authorization'] = f'Bearer {access_token}'
        return data

    def fetch_ivas(self):
        return self._request('GET', '/ivas/')

    def fetch_retenciones(self):
        return self._request('GET', '/retenciones/')

    def calculate_line_total(self, payload):
        """POST one line to sales/calculate-line-total/ and return the parsed body"""
        return self._request('POST', '/sales/calculate-line-total/', error_class=RemoteCalculationError, json=payload)


def parse_line_response(body):
    """
    Turn a calculate-line-total response into (result, tax_rate, withholding_rate).

    Only ``valorTotal`` is mandatory; breakdown amounts the server leaves out
    count as 0. Anything else raises RemoteCalculationError.
    """
    if not isinstance(body, dict) or 'valorTotal' not in body:
        raise RemoteCalculationError("Response is missing valorTotal")
    desglose = body.get('desglose') or {}
    if not isinstance(desglose, dict):
        raise RemoteCalculationError("Response desglose is not an object")

    raw_subtotal = round_money(desglose.get('subtotalInicial'))
    discount_amount = round_money(desglose.get('montoDescuento'))
    if 'subtotalDespuesDescuento' in desglose:
        subtotal = round_money(desglose['subtotalDespuesDescuento'])
    else:
        subtotal = round_money(raw_subtotal - discount_amount)

    result = LineItemResult(
        raw_subtotal=raw_subtotal,
        discount_amount=discount_amount,
        subtotal_after_discount=subtotal,
        tax_amount=round_money(desglose.get('ivaMonto')),
        withholding_amount=round_money(desglose.get('retencionMonto')),
        total=round_money(body['valorTotal']),
    )
    return result, to_decimal(desglose.get('porcentajeIva')), to_decimal(desglose.get('porcentajeRetencion'))


@dataclass(frozen=True)
class LineCalculation:
    """A priced line and where the numbers came from"""
    result: LineItemResult
    tax_rate_percent: Decimal = ZERO
    withholding_rate_percent: Decimal = ZERO
    source: str = SOURCE_LOCAL

    @property
    def is_remote(self):
        return self.source == SOURCE_REMOTE


def _rate_map(rows):
    """[{id, rate, ...}] from a list endpoint -> {id: Decimal rate}"""
    rates = {}
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        rate_id = to_int_id(row.get('id'))
        if rate_id is None:
            continue
        rates[rate_id] = to_decimal(row.get('rate'))
    return rates


class LineTotalCalculator:
    """
    Prices sales lines, preferring the server and falling back to local math.

    Args:
        client: SalesAPIClient, or None to always compute locally
        iva_rates: {id: percent} used by the local fallback
        retencion_rates: {id: percent} used by the local fallback
    """

    def __init__(self, client=None, iva_rates=None, retencion_rates=None):
        self.client = client
        self.iva_rates = dict(iva_rates or {})
        self.retencion_rates = dict(retencion_rates or {})

    def load_reference_rates(self):
        """Refresh the local rate maps from the API; keeps the previous maps on failure"""
        if self.client is None:
            return False
        try:
            iva_rates = _rate_map(self.client.fetch_ivas())
            retencion_rates = _rate_map(self.client.fetch_retenciones())
        except SalesAPIError as e:
            logger.warning(f"Could not load reference rates, keeping cached ones: {str(e)}")
            return False
        self.iva_rates = iva_rates
        self.retencion_rates = retencion_rates
        logger.info(f"Loaded {len(iva_rates)} IVA and {len(retencion_rates)} retención rates")
        return True

    def calculate(self, quantity, unit_price, discount=None, discount_is_percentage=False,
                  iva_id=None, retencion_id=None):
        """Price a line. Never raises because the server is unavailable."""
        if self.client is not None:
            payload = {
                'cantidad': float(to_decimal(quantity)),
                'valorUnitario': float(to_decimal(unit_price)),
                'descuento': float(to_decimal(discount)),
                'descuentoEnPorcentaje': bool(discount_is_percentage),
                'idIva': to_int_id(iva_id) or None,
                'idRetencion': to_int_id(retencion_id) or None,
            }
            try:
                result, tax_rate, withholding_rate = parse_line_response(self.client.calculate_line_total(payload))
                return LineCalculation(result, tax_rate, withholding_rate, SOURCE_REMOTE)
            except RemoteCalculationError as e:
                logger.warning(f"Remote line calculation unavailable, computing locally: {str(e)}")

        return self.calculate_locally(quantity, unit_price, discount, discount_is_percentage, iva_id, retencion_id)

    def calculate_locally(self, quantity, unit_price, discount=None, discount_is_percentage=False,
                          iva_id=None, retencion_id=None):
        tax_rate = resolve_rate(self.iva_rates, iva_id)
        withholding_rate = resolve_rate(self.retencion_rates, retencion_id)
        result = compute_line_total(quantity, unit_price, discount, discount_is_percentage, tax_rate, withholding_rate)
        return LineCalculation(result, tax_rate, withholding_rate, SOURCE_LOCAL)


def build_default_calculator(username=None, password=None):
    """
    Build a calculator from settings.

    Without SALESDESK_API_URL the calculator works purely locally. With
    credentials it logs in first; a failed login still returns a calculator
    that will fall back on every call.
    """
    api_url = get_api_url()
    if not api_url:
        logger.info("SALESDESK_API_URL not configured, line totals will be computed locally")
        return LineTotalCalculator()

    client = SalesAPIClient(api_url, timeout=get_api_timeout())
    if username and password:
        try:
            client.authenticate(username, password)
        except SalesAPIError as e:
            logger.warning(f"SalesDesk login failed: {str(e)}")
    calculator = LineTotalCalculator(client=client)
    calculator.load_reference_rates()
    return calculator
