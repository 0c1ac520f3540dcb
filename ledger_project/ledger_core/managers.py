from django.core.exceptions import PermissionDenied, ValidationError
from django.db import models


# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to a firm
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_firm(self, firm):
        return self.filter(firm=firm)

    def get_for_firm(self, firm, pk):
        """
        Fetch one row of `firm` by primary key.

        A row that exists under another firm raises PermissionDenied so the
        caller can tell "not yours" apart from "not there"; a missing row
        raises the model's DoesNotExist.
        """
        label = self.model._meta.verbose_name.capitalize()
        try:
            return self.for_firm(firm).get(pk=pk)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {label} id: {pk!r}")
        except self.model.DoesNotExist:
            # plain manager, so select_for_update on self is not repeated here
            if self.model._base_manager.filter(pk=pk).exists():
                raise PermissionDenied(f"{label} {pk} does not belong to your firm")
            raise


# Attach TenantQuerySet to .objects
class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    # every model using TenantManager can call:
    # StockItem.objects.for_firm(firm)
    # StockItem.objects.select_for_update().get_for_firm(firm, pk)
    pass
