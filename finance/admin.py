"""
Django Admin configuration for FINANCE app.

The earnings ledger is read-only: entries are written by WalletService.
"""

import csv

from django.contrib import admin
from django.db.models import Sum
from django.http import HttpResponse
from django.urls import reverse
from django.utils.html import format_html

from .models import Transaction, TransactionType


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Partner ledger with links back to the delivered order."""

    list_display = (
        'created_at',
        'partner_label',
        'transaction_type',
        'signed_amount',
        'balance_after',
        'status',
        'order_link',
    )
    list_filter = ('transaction_type', 'status', 'partner__vehicle_type', 'created_at')
    search_fields = ('id', 'partner__name', 'partner__phone', 'order__id', 'reference')
    list_select_related = ('partner',)
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    readonly_fields = [field.name for field in Transaction._meta.fields]

    fieldsets = (
        (None, {'fields': ('id', 'partner', 'transaction_type', 'status', 'order')}),
        ('Balance', {'fields': ('amount', 'balance_before', 'balance_after')}),
        ('Details', {'fields': ('description', 'reference', 'created_at')}),
    )

    actions = ['export_ledger_csv', 'summarise_delivery_credits']

    @admin.display(description="Partner", ordering='partner__name')
    def partner_label(self, obj):
        return f"{obj.partner.name} ({obj.partner.phone})"

    @admin.display(description="Amount", ordering='amount')
    def signed_amount(self, obj):
        return f"{'+' if obj.amount >= 0 else ''}{obj.amount}"

    @admin.display(description="Order")
    def order_link(self, obj):
        if not obj.order_id:
            return "-"
        url = reverse('admin:logistics_order_change', args=[obj.order_id])
        return format_html('<a href="{}">#{}</a>', url, str(obj.order_id)[:8])

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Export ledger as CSV")
    def export_ledger_csv(self, request, queryset):
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename="partner_ledger.csv"'

        writer = csv.writer(response)
        writer.writerow(['Date', 'Partner', 'Phone', 'Type', 'Amount', 'Balance after', 'Order'])
        for entry in queryset.select_related('partner'):
            writer.writerow([
                entry.created_at.strftime('%Y-%m-%d %H:%M'),
                entry.partner.name,
                entry.partner.phone,
                entry.get_transaction_type_display(),
                entry.amount,
                entry.balance_after,
                str(entry.order_id or ''),
            ])
        return response

    @admin.action(description="Total delivery earnings of selection")
    def summarise_delivery_credits(self, request, queryset):
        credits = queryset.filter(transaction_type=TransactionType.DELIVERY_CREDIT)
        total = credits.aggregate(total=Sum('amount'))['total'] or 0
        self.message_user(request, f"{credits.count()} delivery credits, {total} in total")
