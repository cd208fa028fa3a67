# Generated migration

from django.db import migrations, models
import django.db.models.deletion


def amount_field(**kwargs):
    return models.DecimalField(max_digits=78, decimal_places=18, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Deposit',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('tx_hash', models.CharField(max_length=66)),
                ('transfer_uid', models.CharField(max_length=200, unique=True)),
                ('chain_id', models.BigIntegerField()),
                ('depositor', models.CharField(max_length=42)),
                ('token', models.CharField(max_length=42)),
                ('amount', amount_field()),
                ('remaining', amount_field()),
                ('held', amount_field(default=0)),
                ('block_number', models.BigIntegerField(blank=True, null=True)),
                ('log_index', models.IntegerField(blank=True, null=True)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'indexes': [models.Index(fields=['depositor', 'token', 'chain_id', 'id'], name='deposit_match_idx')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('remaining__gte', 0), ('remaining__lte', models.F('amount'))), name='deposit_remaining_in_range'),
                    models.CheckConstraint(condition=models.Q(('held__gte', 0)), name='deposit_held_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DepositAssignment',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('amount', amount_field()),
                ('target_reference', models.CharField(max_length=200)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('deposit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='assignments', to='core.deposit')),
            ],
        ),
        migrations.CreateModel(
            name='DepositHold',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('amount', amount_field()),
                ('reference', models.CharField(max_length=200)),
                ('status', models.CharField(choices=[('active', 'Active'), ('committed', 'Committed'), ('released', 'Released')], default='active', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('deposit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='holds', to='core.deposit')),
            ],
        ),
        migrations.CreateModel(
            name='Vault',
            fields=[
                ('vault_id', models.BigIntegerField(primary_key=True, serialize=False)),
                ('rules', models.TextField(blank=True, null=True)),
                ('seeding_status', models.CharField(choices=[('pending', 'Pending'), ('scheduled', 'Scheduled'), ('failed', 'Failed'), ('skipped', 'Skipped')], default='pending', max_length=16)),
                ('seeding_error', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='VaultController',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('address', models.CharField(db_index=True, max_length=42)),
                ('added_at', models.DateTimeField(auto_now_add=True)),
                ('vault', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='controller_rows', to='core.vault')),
            ],
            options={
                'unique_together': {('vault', 'address')},
            },
        ),
        migrations.CreateModel(
            name='Bundle',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('nonce', models.BigIntegerField(unique=True)),
                ('payload', models.BinaryField()),
                ('proposer', models.CharField(max_length=42)),
                ('signature', models.CharField(max_length=200)),
                ('intention_count', models.IntegerField(default=0)),
                ('content_id', models.CharField(blank=True, db_index=True, max_length=200, null=True)),
                ('anchor_tx_hash', models.CharField(blank=True, default='', max_length=100)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('publish_error', models.TextField(blank=True, default='')),
                ('archival_status', models.CharField(choices=[('pending', 'Pending'), ('uploading', 'Uploading'), ('confirmed', 'Confirmed'), ('failed', 'Failed'), ('skipped', 'Skipped')], db_index=True, default='pending', max_length=16)),
                ('archival_tx_hash', models.CharField(blank=True, default='', max_length=100)),
                ('archival_piece_id', models.CharField(blank=True, default='', max_length=200)),
                ('archival_confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('archival_error', models.TextField(blank=True, default='')),
                ('webhook_status', models.CharField(choices=[('pending', 'Pending'), ('delivered', 'Delivered'), ('failed', 'Failed'), ('skipped', 'Skipped')], default='pending', max_length=16)),
                ('webhook_error', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['-nonce'],
            },
        ),
        migrations.CreateModel(
            name='Proposer',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('address', models.CharField(max_length=42, unique=True)),
                ('last_seen', models.DateTimeField()),
            ],
        ),
    ]
