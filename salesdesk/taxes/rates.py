"""
Cached rate lookups for the IVA and retención tables.

Line-total calculations resolve ``idIva``/``idRetencion`` to percentages on
every request, so the id -> rate maps are kept in the Django cache and
dropped whenever a rate row changes.
"""
from django.core.cache import cache
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from .models import Iva, Retencion

logger = logging.getLogger(__name__)

RATES_CACHE_TTL = 300  # 5 minutes

IVA_RATES_CACHE_KEY = 'tax_rates:iva'
RETENCION_RATES_CACHE_KEY = 'tax_rates:retencion'

_CACHE_KEYS = {
    Iva: IVA_RATES_CACHE_KEY,
    Retencion: RETENCION_RATES_CACHE_KEY,
}


def rate_lookup(model):
    """Return {id: rate} for every row of a rate table, served from cache"""
    cache_key = _CACHE_KEYS[model]
    rates = cache.get(cache_key)
    if rates is not None:
        logger.debug(f"Cache HIT for {cache_key}")
        return rates

    logger.debug(f"Cache MISS for {cache_key}")
    rates = dict(model.objects.values_list('id', 'rate'))
    cache.set(cache_key, rates, RATES_CACHE_TTL)
    return rates


def get_iva_rates():
    return rate_lookup(Iva)


def get_retencion_rates():
    return rate_lookup(Retencion)


def invalidate_rates_cache(model):
    cache.delete(_CACHE_KEYS[model])
    logger.info(f"Invalidated {model.__name__} rates cache")


@receiver([post_save, post_delete], sender=Iva)
def invalidate_iva_rates(sender, **kwargs):
    invalidate_rates_cache(Iva)


@receiver([post_save, post_delete], sender=Retencion)
def invalidate_retencion_rates(sender, **kwargs):
    invalidate_rates_cache(Retencion)
