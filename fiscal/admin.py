from django.contrib import admin

from fiscal.models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = (
        "invoice_number",
        "transaction_type",
        "receipt_type",
        "journal_status",
        "journal_attempts",
        "created_at",
    )
    list_filter = ("journal_status", "transaction_type", "receipt_type")
    search_fields = ("invoice_number", "internal_receipt_number")

    # registro fiscal: somente leitura no admin
    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
