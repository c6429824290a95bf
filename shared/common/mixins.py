# shared/common/mixins.py
"""
Reusable Mixins for Models and Views
"""

import uuid
from django.db import models
from rest_framework.exceptions import PermissionDenied, ValidationError


# =============================================================================
# MODEL MIXINS
# =============================================================================

class UUIDPrimaryKeyMixin(models.Model):
    """
    Mixin that provides UUID as primary key instead of auto-increment integer.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record"
    )

    class Meta:
        abstract = True


class TimestampMixin(models.Model):
    """
    Mixin that provides created_at and updated_at timestamp fields.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When this record was created"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When this record was last updated"
    )

    class Meta:
        abstract = True


class OrganizationMixin(models.Model):
    """
    Mixin for multi-tenant models that belong to an organization.
    """

    organization_id = models.UUIDField(
        db_index=True,
        help_text="Organization this record belongs to"
    )

    class Meta:
        abstract = True


# =============================================================================
# VIEW MIXINS
# =============================================================================

class OrganizationFilterMixin:
    """
    Mixin that scopes views to the caller's organization.

    An authenticated principal's organization always wins; a disagreeing
    X-Organization-ID header is refused. The header alone is honoured
    only for callers without a token principal.
    """

    def get_organization_id(self) -> uuid.UUID:
        header_org_id = self.request.headers.get('X-Organization-ID')
        user_org_id = getattr(self.request.user, 'organization_id', None)

        if user_org_id:
            if header_org_id and header_org_id.lower() != str(user_org_id).lower():
                raise PermissionDenied('X-Organization-ID does not match the authenticated organization')
            org_id = user_org_id
        else:
            org_id = header_org_id

        if not org_id:
            raise ValidationError({'organization_id': 'X-Organization-ID header is required'})

        try:
            return uuid.UUID(str(org_id))
        except ValueError:
            raise ValidationError({'organization_id': f'Invalid organization id: {org_id}'})

    def get_user_id(self):
        user_id = getattr(self.request.user, 'id', None)
        try:
            return uuid.UUID(str(user_id)) if user_id else None
        except ValueError:
            return None

    def get_queryset(self):
        queryset = super().get_queryset()

        if hasattr(queryset.model, 'organization_id'):
            queryset = queryset.filter(organization_id=self.get_organization_id())

        return queryset
