from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('salons', '0001_initial'),
        ('bookings', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='WaitlistEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_name', models.CharField(max_length=255)),
                ('customer_email', models.EmailField(blank=True, max_length=254)),
                ('customer_phone', models.CharField(blank=True, max_length=32)),
                ('customer_key', models.CharField(db_index=True, editable=False, max_length=255)),
                ('preferred_date', models.DateField()),
                ('preferred_time_start', models.TimeField(blank=True, null=True)),
                ('preferred_time_end', models.TimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('waiting', 'Waiting'), ('notified', 'Notified'), ('booked', 'Booked'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='waiting', max_length=16)),
                ('priority_override_score', models.IntegerField(blank=True, null=True)),
                ('priority_override_reason', models.CharField(blank=True, max_length=255)),
                ('status_changed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('employee', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='waitlist_entries', to='salons.employee')),
                ('salon', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_entries', to='salons.salon')),
                ('service', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_entries', to='salons.service')),
            ],
            options={
                'verbose_name_plural': 'waitlist entries',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['salon', 'service', 'status', 'preferred_date'], name='waitlist_entry_match_idx')],
            },
        ),
        migrations.CreateModel(
            name='WaitlistOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('slot_date', models.DateField()),
                ('slot_start', models.DateTimeField()),
                ('slot_end', models.DateTimeField(blank=True, null=True)),
                ('token_hash', models.CharField(max_length=64, unique=True)),
                ('token_expires_at', models.DateTimeField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('declined', 'Declined'), ('expired', 'Expired'), ('cancelled', 'Cancelled'), ('notification_failed', 'Notification failed')], default='pending', max_length=24)),
                ('attempt_no', models.PositiveIntegerField(default=1)),
                ('reminder_sent_at', models.DateTimeField(blank=True, null=True)),
                ('status_changed_at', models.DateTimeField(blank=True, null=True)),
                ('last_error', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('booking', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='waitlist_offers', to='bookings.booking')),
                ('employee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_offers', to='salons.employee')),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='waitlist.waitlistentry')),
                ('salon', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_offers', to='salons.salon')),
                ('service', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_offers', to='salons.service')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['status', 'token_expires_at'], name='waitlist_offer_expiry_idx'),
                    models.Index(fields=['employee', 'slot_start'], name='waitlist_offer_slot_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'pending')), fields=('employee', 'slot_start'), name='waitlist_offer_one_pending_per_slot'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CustomerCooldown',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_key', models.CharField(max_length=255)),
                ('decline_count', models.PositiveIntegerField(default=0)),
                ('cooldown_until', models.DateTimeField(blank=True, null=True)),
                ('cooldown_reason', models.CharField(blank=True, max_length=32)),
                ('reactivated_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('salon', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_cooldowns', to='salons.salon')),
            ],
            options={
                'indexes': [models.Index(fields=['cooldown_until'], name='waitlist_cooldown_until_idx')],
                'constraints': [
                    models.UniqueConstraint(fields=('salon', 'customer_key'), name='waitlist_cooldown_customer_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WaitlistPolicy',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('claim_expiry_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('reminder_after_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('cooldown_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('passive_decline_threshold', models.PositiveIntegerField(blank=True, null=True)),
                ('passive_cooldown_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('auto_notify_on_reactivation', models.BooleanField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('salon', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_policies', to='salons.salon')),
                ('service', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_policies', to='salons.service')),
            ],
            options={
                'verbose_name_plural': 'waitlist policies',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('salon__isnull', False), ('service__isnull', False), _connector='OR'), name='waitlist_policy_has_scope'),
                    models.UniqueConstraint(fields=('salon', 'service'), name='waitlist_policy_scope_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WaitlistLifecycleEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('from_status', models.CharField(blank=True, max_length=16)),
                ('to_status', models.CharField(max_length=16)),
                ('reason', models.CharField(max_length=64)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='waitlist_lifecycle_events', to=settings.AUTH_USER_MODEL)),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lifecycle_events', to='waitlist.waitlistentry')),
                ('salon', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='waitlist_lifecycle_events', to='salons.salon')),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['entry', 'created_at'], name='waitlist_event_entry_idx')],
            },
        ),
    ]
