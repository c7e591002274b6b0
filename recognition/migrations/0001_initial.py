"""Create the encrypted face profile table."""

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="FaceProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "encrypted_embeddings",
                    models.BinaryField(help_text="Fernet-encrypted float64 matrix of enrolled embeddings."),
                ),
                (
                    "pose_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Number of templates stored in the encrypted matrix."
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        help_text="The user these templates identify.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="face_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Face Profile",
                "verbose_name_plural": "Face Profiles",
            },
        ),
    ]
