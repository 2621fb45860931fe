from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('conversations', '0001_initial'),
        ('rides', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='riderequest',
            name='linked_conversations',
            field=models.ManyToManyField(blank=True, related_name='linked_rides', to='conversations.conversation'),
        ),
    ]
