from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
import logging
import math

from salesdesk.taxes.rates import get_iva_rates, get_retencion_rates
from .pricing import LineItem, resolve_rate, summarize_lines
from .serializers import LineTotalRequestSerializer, SaleTotalsRequestSerializer

logger = logging.getLogger(__name__)


def json_amount(value):
    """Amounts past the double range render as null, like Infinity does in JSON"""
    return value if math.isfinite(float(value)) else None


def build_line_breakdown(line_data, discount_is_percentage, iva_rates, retencion_rates):
    """
    Price one line and shape the response the sales screen consumes.

    Returns:
        (LineItem, LineItemResult, payload) where payload is
        {'valorTotal': ..., 'desglose': {...}}
    """
    id_iva = line_data.get('idIva')
    id_retencion = line_data.get('idRetencion')
    item = LineItem.from_raw(
        quantity=line_data.get('cantidad'),
        unit_price=line_data.get('valorUnitario'),
        discount=line_data.get('descuento'),
        discount_is_percentage=discount_is_percentage,
        tax_rate_percent=resolve_rate(iva_rates, id_iva),
        withholding_rate_percent=resolve_rate(retencion_rates, id_retencion),
    )
    result = item.compute()

    payload = {
        'valorTotal': json_amount(result.total),
        'desglose': {
            'subtotalInicial': json_amount(result.raw_subtotal),
            'descuento': item.discount,
            'descuentoEnPorcentaje': item.discount_is_percentage,
            'montoDescuento': json_amount(result.discount_amount),
            'subtotalDespuesDescuento': json_amount(result.subtotal_after_discount),
            'idIva': id_iva,
            'porcentajeIva': item.tax_rate_percent,
            'ivaMonto': json_amount(result.tax_amount),
            'idRetencion': id_retencion,
            'porcentajeRetencion': item.withholding_rate_percent,
            'retencionMonto': json_amount(result.withholding_amount),
            'valorTotal': json_amount(result.total),
        },
    }
    return item, result, payload


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def calculate_line_total(request):
    """Calculate the total and breakdown of one sales line"""
    serializer = LineTotalRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    _, _, payload = build_line_breakdown(
        data,
        data['descuentoEnPorcentaje'],
        get_iva_rates(),
        get_retencion_rates(),
    )
    logger.debug(f"Line total calculated: {payload['valorTotal']}")
    return Response(payload)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def calculate_sale_totals(request):
    """Calculate every line of a sale plus the footer totals"""
    serializer = SaleTotalsRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    discount_is_percentage = data['descuentoEnPorcentaje']
    iva_rates = get_iva_rates()
    retencion_rates = get_retencion_rates()

    priced = []
    lineas = []
    for line_data in data['lineas']:
        item, result, payload = build_line_breakdown(line_data, discount_is_percentage, iva_rates, retencion_rates)
        priced.append((item, result))
        lineas.append(payload)

    totals = summarize_lines(priced)
    return Response({
        'lineas': lineas,
        'totales': {
            'bruto': json_amount(totals.gross),
            'descuento': json_amount(totals.discount),
            'subtotal': json_amount(totals.subtotal),
            'iva': json_amount(totals.tax),
            'retencion': json_amount(totals.withholding),
            'total': json_amount(totals.total),
        },
    })
