# Shared Common Library
# Authentication, middleware, model mixins and the API error handler
# used by the services.

__version__ = "1.0.0"
