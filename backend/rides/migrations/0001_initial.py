import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('conversations', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='RideRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('origin', models.CharField(max_length=255)),
                ('destination', models.CharField(max_length=255)),
                ('total_fare', models.DecimalField(decimal_places=2, max_digits=10)),
                ('vehicle_type', models.CharField(choices=[('AutoRickshaw', 'Auto Rickshaw'), ('CNG', 'CNG'), ('Car', 'Car'), ('Hicks', 'Hicks')], max_length=20)),
                ('total_passengers', models.PositiveSmallIntegerField()),
                ('total_accepted', models.PositiveSmallIntegerField(default=0)),
                ('ride_time', models.DateTimeField(db_index=True)),
                ('note', models.TextField(blank=True, default='')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('conversation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='rides', to='conversations.conversation')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='created_rides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'ride_requests',
                'ordering': ['ride_time'],
            },
        ),
        migrations.CreateModel(
            name='RideParticipant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='rides.riderequest')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'ride_participants',
                'ordering': ['joined_at', 'id'],
            },
        ),
        migrations.AddConstraint(
            model_name='rideparticipant',
            constraint=models.UniqueConstraint(fields=('ride', 'user'), name='unique_ride_participant'),
        ),
        migrations.AddField(
            model_name='riderequest',
            name='participants',
            field=models.ManyToManyField(related_name='joined_rides', through='rides.RideParticipant', to=settings.AUTH_USER_MODEL),
        ),
        migrations.AddConstraint(
            model_name='riderequest',
            constraint=models.CheckConstraint(condition=models.Q(total_passengers__gte=1), name='ride_capacity_positive'),
        ),
        migrations.AddConstraint(
            model_name='riderequest',
            constraint=models.CheckConstraint(condition=models.Q(total_accepted__lte=models.F('total_passengers')), name='ride_accepted_within_capacity'),
        ),
        migrations.CreateModel(
            name='RidePreference',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('gender', models.CharField(blank=True, choices=[('Male', 'Male'), ('Female', 'Female'), ('Other', 'Other')], max_length=10)),
                ('age_range', models.CharField(blank=True, max_length=20)),
                ('institution', models.CharField(blank=True, max_length=150)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='preferences', to='rides.riderequest')),
            ],
            options={
                'db_table': 'ride_preferences',
            },
        ),
    ]
