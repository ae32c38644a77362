from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='RateLimitBucket',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('identifier', models.CharField(max_length=255)),
                ('identifier_type', models.CharField(max_length=16)),
                ('action_type', models.CharField(max_length=64)),
                ('attempt_count', models.PositiveIntegerField(default=0)),
                ('window_start', models.DateTimeField()),
                ('blocked_until', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'indexes': [models.Index(fields=['action_type', 'window_start'], name='ratelimit_action_window_idx')],
            },
        ),
        migrations.AddConstraint(
            model_name='ratelimitbucket',
            constraint=models.UniqueConstraint(fields=('identifier', 'identifier_type', 'action_type'), name='rate_limit_bucket_identity'),
        ),
    ]
