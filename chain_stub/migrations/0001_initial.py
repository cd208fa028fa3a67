# Generated migration

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='StubDepositEvent',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('chain_id', models.BigIntegerField()),
                ('block_number', models.BigIntegerField()),
                ('tx_hash', models.CharField(max_length=66)),
                ('log_index', models.IntegerField(default=0)),
                ('depositor', models.CharField(max_length=42)),
                ('token', models.CharField(max_length=42)),
                ('amount', models.DecimalField(decimal_places=18, max_digits=78)),
            ],
            options={
                'unique_together': {('tx_hash', 'log_index')},
            },
        ),
        migrations.CreateModel(
            name='StubVault',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('controller', models.CharField(max_length=42)),
                ('tx_hash', models.CharField(max_length=66)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='StubBundleAnchor',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('content_id', models.CharField(max_length=200)),
                ('proposer', models.CharField(max_length=42)),
                ('tx_hash', models.CharField(max_length=66, unique=True)),
                ('block_number', models.BigIntegerField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
    ]
