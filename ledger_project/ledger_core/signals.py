from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import Bill

""" Bills are cancelled, never deleted. """


# pre_delete fires just before Django deletes a Bill instance,
# including through a cascade from its firm
@receiver(pre_delete, sender=Bill)
def prevent_delete_bill(sender, instance, **kwargs):
    raise ValidationError(f"Bill {instance.bill_no} cannot be deleted; cancel it instead.")
