# Generated migration

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='StubObject',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('content_id', models.CharField(max_length=200, unique=True)),
                ('data', models.BinaryField()),
                ('size', models.BigIntegerField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='StubArchivalUpload',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('content_id', models.CharField(db_index=True, max_length=200)),
                ('piece_id', models.CharField(max_length=200)),
                ('tx_hash', models.CharField(max_length=66)),
                ('size', models.BigIntegerField()),
                ('confirmed', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
    ]
