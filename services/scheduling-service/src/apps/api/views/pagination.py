# services/scheduling-service/src/apps/api/views/pagination.py
"""
API Pagination

Pagination classes for the scheduling API.
"""

from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list views."""

    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100
