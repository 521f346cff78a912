from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class CustomPageNumberPagination(PageNumberPagination):
    """
    Pagination personnalisée qui permet au client de spécifier la taille de page
    via le paramètre 'page_size' dans la requête.

    Réponse : {'results': [...], 'pagination': {current_page, last_page, per_page, total}}
    """
    page_size = 20  # Taille par défaut
    page_size_query_param = 'page_size'  # Permet au client de changer la taille
    max_page_size = 100  # Limite maximale pour éviter les abus

    def get_paginated_response(self, data):
        return Response({
            'results': data,
            'pagination': {
                'current_page': self.page.number,
                'last_page': self.page.paginator.num_pages,
                'per_page': self.page.paginator.per_page,
                'total': self.page.paginator.count,
            },
        })


class RecipePagination(CustomPageNumberPagination):
    """Grille publique des recettes"""
    page_size = 12
