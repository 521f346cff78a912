import logging

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'حدث خطأ غير متوقع'
NOT_FOUND_MESSAGE = 'غير موجود'


def _first_message(detail):
    """Extraire le premier message lisible d'une structure d'erreurs DRF"""
    if isinstance(detail, dict):
        for value in detail.values():
            message = _first_message(value)
            if message:
                return message
        return None
    if isinstance(detail, (list, tuple)):
        for value in detail:
            message = _first_message(value)
            if message:
                return message
        return None
    return str(detail) if detail else None


def api_exception_handler(exc, context):
    """
    Gestionnaire d'exceptions de l'API.

    - Erreurs de validation : 422 avec {'message', 'errors'}
    - Ressource introuvable : 404 avec {'error'}
    - Autres erreurs DRF : réponse standard de DRF
    - Exceptions non gérées : loggées puis 500 avec un message générique
    """
    if isinstance(exc, ValidationError):
        errors = exc.detail if isinstance(exc.detail, dict) else {'non_field_errors': exc.detail}
        return Response(
            {'message': _first_message(exc.detail), 'errors': errors},
            status=status.HTTP_422_UNPROCESSABLE_ENTITY
        )

    if isinstance(exc, Http404):
        return Response({'error': NOT_FOUND_MESSAGE}, status=status.HTTP_404_NOT_FOUND)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    logger.exception(
        "[API] Unhandled error in %s: %s",
        view.__class__.__name__ if view else 'unknown view', exc
    )
    return Response({'error': GENERIC_ERROR_MESSAGE}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
