"""
FINANCE App - Partner Earnings Ledger for RELAY

Handles: Transactions, Wallet Operations
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from django.db import models, transaction

logger = logging.getLogger(__name__)


class TransactionType(models.TextChoices):
    """Transaction type enumeration."""
    DELIVERY_CREDIT = 'delivery_credit', 'Delivery earnings'


class TransactionStatus(models.TextChoices):
    """Transaction status enumeration."""
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'
    REVERSED = 'reversed', 'Reversed'


class Transaction(models.Model):
    """
    Partner ledger entry.

    All balance movements create a Transaction for audit trail.
    Amounts are always positive: the ledger only records credits.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    partner = models.ForeignKey(
        'partners.Partner',
        on_delete=models.PROTECT,
        related_name='transactions',
        verbose_name="Partner"
    )

    # Transaction Details
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        verbose_name="Type"
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        verbose_name="Amount"
    )
    balance_before = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        verbose_name="Balance before"
    )
    balance_after = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        verbose_name="Balance after"
    )

    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.COMPLETED,
        verbose_name="Status"
    )

    # Related Order (if applicable)
    order = models.ForeignKey(
        'logistics.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions',
        verbose_name="Order"
    )

    # Metadata
    description = models.CharField(max_length=255, blank=True, verbose_name="Description")
    reference = models.CharField(max_length=100, blank=True, verbose_name="External reference")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['partner', 'created_at'], name='txn_partner_created_idx'),
            models.Index(fields=['transaction_type', 'status'], name='txn_type_status_idx'),
        ]
        constraints = [
            # One delivery credit per order, whatever the caller does
            models.UniqueConstraint(
                fields=['order'],
                condition=models.Q(transaction_type='delivery_credit'),
                name='unique_delivery_credit_per_order'
            ),
        ]

    def __str__(self):
        sign = '+' if self.amount >= 0 else ''
        return f"{self.partner.name} | {sign}{self.amount} | {self.transaction_type}"


class WalletService:
    """
    Service class for partner balance operations.

    All operations use transaction.atomic() and lock the partner row.
    """

    @staticmethod
    @transaction.atomic
    def credit(partner, amount: Decimal, transaction_type: str,
               order=None, description: str = "") -> Transaction:
        """
        Credit a partner's balance.

        Args:
            partner: Partner instance
            amount: Positive decimal amount
            transaction_type: TransactionType value
            order: Optional related order
            description: Optional description

        Returns:
            Transaction instance
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        # Lock partner row for update
        partner = partner.__class__.objects.select_for_update().get(pk=partner.pk)

        balance_before = partner.earnings_balance
        partner.earnings_balance += amount
        partner.save(update_fields=['earnings_balance'])

        logger.info(
            f"[WALLET] +{amount} to partner {str(partner.id)[:8]} "
            f"({transaction_type}, balance {partner.earnings_balance})"
        )

        return Transaction.objects.create(
            partner=partner,
            transaction_type=transaction_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=partner.earnings_balance,
            order=order,
            description=description,
            status=TransactionStatus.COMPLETED
        )

    @staticmethod
    @transaction.atomic
    def credit_delivery(order, share_percent: Decimal) -> Optional[Transaction]:
        """
        Credit the assigned partner their share of a delivered order.

        Business Rule:
        - Partner earns `share_percent` of pricing_total
        - A zero share (free order, 0% share) credits nothing
        - At most one delivery credit per order (DB constraint)

        Returns:
            Transaction instance, or None when there is nothing to credit
        """
        partner = order.partner
        if partner is None:
            raise ValueError("Order has no partner to credit")

        amount = (order.pricing_total * share_percent / Decimal('100')).quantize(Decimal('0.01'))
        if amount <= 0:
            logger.info(f"[WALLET] Order {str(order.id)[:8]}: nothing to credit (share {amount})")
            return None

        return WalletService.credit(
            partner=partner,
            amount=amount,
            transaction_type=TransactionType.DELIVERY_CREDIT,
            order=order,
            description=f"Earnings for order {str(order.id)[:8]}"
        )
