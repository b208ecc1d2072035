from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from .models import Iva, Retencion
from .serializers import IvaSerializer, RetencionSerializer
from .filters import IvaFilter, RetencionFilter


# Iva views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def iva_list_create(request):
    """List IVA rates (ordered by rate) or create a new one"""
    if request.method == 'GET':
        filterset = IvaFilter(request.query_params, queryset=Iva.objects.all())
        serializer = IvaSerializer(filterset.qs, many=True)
        return Response(serializer.data)
    else:  # POST
        serializer = IvaSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def iva_detail(request, pk):
    """Retrieve, update or delete an IVA rate"""
    iva = get_object_or_404(Iva, pk=pk)

    if request.method == 'GET':
        serializer = IvaSerializer(iva)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = IvaSerializer(iva, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        iva.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Retencion views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def retencion_list_create(request):
    """List withholding rates (ordered by rate) or create a new one"""
    if request.method == 'GET':
        filterset = RetencionFilter(request.query_params, queryset=Retencion.objects.all())
        serializer = RetencionSerializer(filterset.qs, many=True)
        return Response(serializer.data)
    else:  # POST
        serializer = RetencionSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def retencion_detail(request, pk):
    """Retrieve, update or delete a withholding rate"""
    retencion = get_object_or_404(Retencion, pk=pk)

    if request.method == 'GET':
        serializer = RetencionSerializer(retencion)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = RetencionSerializer(retencion, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        retencion.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
