# =============== MIDDLEWARE FOR CAFE CONTEXT ===============
import logging

from .models import Cafe

logger = logging.getLogger(__name__)


class CafeMiddleware:
    """
    Resolve the cafe a request is aimed at.

    Lookup order is the X-Cafe-Slug header, a ``cafe`` query parameter,
    then the request host matched against Cafe.hostname. The result (or
    None) is stored on ``request.current_cafe``.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.current_cafe = self.resolve_cafe(request)
        response = self.get_response(request)
        return response

    def resolve_cafe(self, request):
        slug = request.META.get('HTTP_X_CAFE_SLUG') or request.GET.get('cafe')
        if slug:
            try:
                return Cafe.objects.get(slug=slug)
            except Cafe.DoesNotExist:
                logger.warning(f"Unknown cafe slug in request: {slug}")
                return None

        host = request.get_host().split(':')[0]
        if host:
            return Cafe.objects.filter(hostname=host).first()
        return None
