from django.http import JsonResponse

from catalog.providers import get_services
from catalog.results import Ok


def health_view(_request):
    """Report whether the storage API answers its health check."""
    storage_ok = isinstance(get_services().entities.ping(), Ok)
    return JsonResponse(
        {"ok": storage_ok, "components": {"storage": {"ok": storage_ok}}},
        status=200 if storage_ok else 503,
    )
