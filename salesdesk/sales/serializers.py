from rest_framework import serializers
from .pricing import to_decimal, to_int_id


class LenientDecimalField(serializers.Field):
    """Numeric field that reads anything unparseable as 0 instead of rejecting it.

    Presence is still enforced through ``required``; only the value is lenient.
    """

    def to_internal_value(self, data):
        return to_decimal(data)

    def to_representation(self, value):
        return to_decimal(value)


class RateIdField(serializers.Field):
    """IVA/retención id read like parseInt; anything without a leading integer is None"""

    def to_internal_value(self, data):
        return to_int_id(data)

    def to_representation(self, value):
        return value


class LineFieldsSerializer(serializers.Serializer):
    cantidad = LenientDecimalField(allow_null=True)
    valorUnitario = LenientDecimalField(allow_null=True)
    descuento = LenientDecimalField(allow_null=True)
    idIva = RateIdField(required=False, allow_null=True)
    idRetencion = RateIdField(required=False, allow_null=True)


class LineTotalRequestSerializer(LineFieldsSerializer):
    """Body of POST sales/calculate-line-total/"""
    descuentoEnPorcentaje = serializers.BooleanField()


class SaleTotalsRequestSerializer(serializers.Serializer):
    """Body of POST sales/calculate-totals/"""
    descuentoEnPorcentaje = serializers.BooleanField()
    lineas = LineFieldsSerializer(many=True, allow_empty=True)
