# Generated migration

from django.db import migrations, models


def amount_field(**kwargs):
    return models.DecimalField(max_digits=78, decimal_places=18, **kwargs)


class Migration(migrations.Migration):

    dependencies = [
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='vault',
            name='last_nonce',
            field=models.BigIntegerField(blank=True, null=True),
        ),
        migrations.AddField(
            model_name='bundle',
            name='publishing',
            field=models.BooleanField(default=False),
        ),
        migrations.CreateModel(
            name='VaultBalance',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('vault_id', models.BigIntegerField()),
                ('token', models.CharField(max_length=42)),
                ('balance', amount_field(default=0)),
                ('held', amount_field(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'unique_together': {('vault_id', 'token')},
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('held__gte', 0), ('held__lte', models.F('balance'))), name='vault_balance_held_in_range'),
                ],
            },
        ),
    ]
