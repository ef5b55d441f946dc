import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('logistics', '0001_initial'),
        ('partners', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('transaction_type', models.CharField(choices=[('delivery_credit', 'Delivery earnings')], max_length=20, verbose_name='Type')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount')),
                ('balance_before', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Balance before')),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Balance after')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed'), ('reversed', 'Reversed')], default='completed', max_length=20, verbose_name='Status')),
                ('description', models.CharField(blank=True, max_length=255, verbose_name='Description')),
                ('reference', models.CharField(blank=True, max_length=100, verbose_name='External reference')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='logistics.order', verbose_name='Order')),
                ('partner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='partners.partner', verbose_name='Partner')),
            ],
            options={
                'verbose_name': 'Transaction',
                'verbose_name_plural': 'Transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['partner', 'created_at'], name='txn_partner_created_idx'),
                    models.Index(fields=['transaction_type', 'status'], name='txn_type_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('transaction_type', 'delivery_credit')), fields=('order',), name='unique_delivery_credit_per_order'),
                ],
            },
        ),
    ]
